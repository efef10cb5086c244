#!/usr/bin/env python3
"""
Bootstrap demo of the dfsfleet constraint engine.

A simulated cluster manager offers resources from a handful of agents. The
offer loop carries out every decision (reserve, create volume, launch) and
feeds status updates back into the state registry until the cluster
reaches steady state.
"""

import itertools

from dfsfleet.cluster.builders import OfferBuilder, ResourceBuilder, TaskStatusBuilder
from dfsfleet.cluster.protos import TaskState
from dfsfleet.main import build_components
from dfsfleet.scheduler.offers import OfferAction
from dfsfleet.scheduler.status import TaskStatusFactory
from dfsfleet.state.phase import AcquisitionPhase
from dfsfleet.state.records import NodeRole
from dfsfleet.utils.config import FrameworkConfig
from dfsfleet.utils.logging import configure_logging
from dfsfleet.utils.retry import RetryManager


class SimulatedAgent:
    """An agent whose resources move between unreserved, reserved and volume."""
    
    def __init__(self, hostname, cpus=8.0, mem=32768, disk=102400):
        self.hostname = hostname
        self.unreserved = {"cpus": cpus, "mem": mem, "disk": disk}
        self.reserved = []
        self.volumes = []
    
    def offer(self, offer_id, builder):
        return (
            OfferBuilder(offer_id, "demo-framework", f"slave-{self.hostname}", self.hostname)
            .add_resource(builder.create_cpu_resource(self.unreserved["cpus"]))
            .add_resource(builder.create_mem_resource(self.unreserved["mem"]))
            .add_resource(builder.create_disk_resource(self.unreserved["disk"]))
            .add_resources(self.reserved)
            .add_resources(self.volumes)
            .build()
        )
    
    def reserve(self, resources):
        for resource in resources:
            self.unreserved[resource.name] -= resource.scalar
            self.reserved.append(resource)
    
    def create_volume(self, volume_disk):
        for i, resource in enumerate(self.reserved):
            if resource.name == "disk" and resource.scalar >= volume_disk.scalar:
                del self.reserved[i]
                break
        self.volumes.append(volume_disk)


def main():
    configure_logging(log_level="WARNING", log_format="console")
    
    config = FrameworkConfig(journal_node_count=3, data_node_count=3)
    components = build_components(config)
    state = components.state
    retry = RetryManager()
    builder = ResourceBuilder(config.role, config.principal)
    
    agents = [SimulatedAgent(f"agent-{i}") for i in range(6)]
    offer_ids = (f"offer-{n}" for n in itertools.count())
    
    print("=" * 60)
    print("dfsfleet - Bootstrap Demo")
    print("=" * 60)
    
    for round_number in itertools.count(1):
        if components.provider.phase == AcquisitionPhase.STEADY_STATE:
            break
        if round_number > 50:
            print("Gave up after 50 offer rounds")
            return
        
        for agent in agents:
            decision = components.evaluator.evaluate(agent.offer(next(offer_ids), builder))
            
            if decision.action == OfferAction.RESERVE:
                agent.reserve(decision.resources)
            elif decision.action == OfferAction.CREATE_VOLUME:
                agent.create_volume(decision.resources[0])
            elif decision.action == OfferAction.LAUNCH:
                task = decision.task
                retry.execute_with_retry(lambda: state.record_task(task), "record task")
                print(f"  launched {task.name} on {task.hostname}")
                
                running = TaskStatusBuilder.create_task_status(task.id, task.slave_id, TaskState.RUNNING)
                retry.execute_with_retry(lambda: state.apply(running), "apply status")
            
            # Name nodes report initialization once both are running
            if len(state.name_nodes()) == 2 and not state.name_nodes_initialized():
                for nn in state.name_nodes():
                    status = TaskStatusFactory.create_name_node_status(nn.id, True, nn.slave_id)
                    retry.execute_with_retry(lambda: state.apply(status), "apply status")
                print("  name nodes initialized")
        
        print(f"[round {round_number}] phase={components.provider.phase.value}")
    
    print("\nFinal topology:")
    for role in NodeRole:
        hosts = sorted(t.hostname for t in state.list_tasks(role))
        print(f"  {role.value}: {hosts}")
    print(f"  orphaned volumes: {len(state.orphaned_volumes())}")
    
    print("\n" + "=" * 60)
    print("Demo completed successfully!")
    print("=" * 60)


if __name__ == '__main__':
    main()
