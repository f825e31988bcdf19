import asyncio
import functools
import logging

logger = logging.getLogger(__name__)

def retry_on_exception(retries=3, delay=0.5, exceptions=(Exception,), error_cls=None):
    """Повтор async-вызова; после последней попытки бросает error_cls (или исходную ошибку)"""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            last_error = None
            for attempt in range(1, retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_error = e
                    logger.warning(f"⚠️ {func.__name__}: попытка {attempt}/{retries} не удалась: {e}")
                    if attempt < retries:
                        await asyncio.sleep(delay)
            if error_cls is not None:
                raise error_cls(f"Все попытки {func.__name__} не удались: {last_error}") from last_error
            raise last_error
        return wrapper
    return decorator
