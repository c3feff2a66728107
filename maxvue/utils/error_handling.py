"""
Fallback logic for MaxVue.
Keeps failures inside the component that produced them so the interactive caller always gets a usable result.
"""

import logging
import time
from functools import wraps
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def with_fallback(
    fallback_value: Any = None,
    fallback_func: Optional[Callable] = None,
    log_error: bool = True
):
    """
    Decorator to add fallback logic to functions.
    
    Arguments:
        fallback_value: Default value to return on error
        fallback_func: Function to call for fallback (takes same args as original)
        log_error: Whether to log errors
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log_error:
                    logger.warning(f"{func.__name__} failed: {e}, using fallback")
                
                if fallback_func:
                    try:
                        return fallback_func(*args, **kwargs)
                    except Exception as fallback_error:
                        logger.error(f"Fallback for {func.__name__} also failed: {fallback_error}")
                        return fallback_value
                return fallback_value
        return wrapper
    return decorator


def with_timeout(timeout_ms: float = 1000.0):
    """
    Decorator that logs calls running past a time budget.
    
    The call is not interrupted; this only reports. Hard budgets are enforced
    where the work can be raced against a timer (see ContentAnalyzer).
    
    Arguments:
        timeout_ms: Timeout in milliseconds
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            
            if elapsed_ms > timeout_ms:
                logger.warning(f"{func.__name__} took {elapsed_ms:.2f}ms (exceeded {timeout_ms}ms)")
            
            return result
        return wrapper
    return decorator
