"""
Retry logic with exponential backoff for state writes.

Conflicting compare-and-swap writes surface as RetryableError; retry policy
belongs to the caller and lives here.
"""

import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from dfsfleet.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.
    
    Attributes:
        max_retries: Maximum number of retry attempts
        retry_backoff_ms: Initial backoff in milliseconds
        retry_backoff_max_ms: Maximum backoff in milliseconds
        retry_jitter_ms: Random jitter to add to backoff
    """
    max_retries: int = 3
    retry_backoff_ms: int = 50
    retry_backoff_max_ms: int = 2000
    retry_jitter_ms: int = 10


class RetryableError(Exception):
    """Exception that should trigger retry."""
    pass


class NonRetryableError(Exception):
    """Exception that should not be retried."""
    pass


class RetryManager:
    """
    Re-runs an operation while it fails with RetryableError.
    
    Any other exception propagates immediately. The delay doubles each
    attempt, capped at retry_backoff_max_ms, plus random jitter.
    """
    
    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()
    
    def execute_with_retry(
        self,
        operation: Callable[[], T],
        operation_name: str = "operation",
    ) -> T:
        """
        Execute operation with retry logic.
        
        Args:
            operation: Callable to execute
            operation_name: Name for logging
        
        Returns:
            Result from operation
        
        Raises:
            RetryableError: If all retries are exhausted
        """
        for attempt in range(self.config.max_retries + 1):
            try:
                result = operation()
                
                if attempt > 0:
                    logger.info(
                        f"{operation_name} succeeded after retry",
                        attempt=attempt,
                    )
                
                return result
            
            except RetryableError as e:
                if attempt >= self.config.max_retries:
                    logger.error(
                        f"{operation_name} failed after all retries",
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    raise
                
                backoff_ms = self._calculate_backoff(attempt)
                logger.warning(
                    f"{operation_name} failed, retrying",
                    attempt=attempt,
                    backoff_ms=backoff_ms,
                    error=str(e),
                )
                time.sleep(backoff_ms / 1000.0)
        
        raise NonRetryableError(f"{operation_name} was never attempted")
    
    def _calculate_backoff(self, attempt: int) -> int:
        """
        Calculate backoff delay with exponential growth and jitter.
        
        Formula: min(base * 2^attempt, max) + jitter
        """
        exponential_backoff = self.config.retry_backoff_ms * (2 ** attempt)
        backoff = min(exponential_backoff, self.config.retry_backoff_max_ms)
        jitter = random.randint(0, self.config.retry_jitter_ms)
        return backoff + jitter
