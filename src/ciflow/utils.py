import functools
import asyncio
import signal


def async_click(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))
    return wrapper


def cancel_on_interrupt(cancel: asyncio.Event) -> bool:
    """
    Вешает на SIGINT/SIGTERM установку cancel-события в текущем event loop.
    Возвращает False, если платформа не поддерживает обработчики сигналов.
    """
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, cancel.set)
    except (NotImplementedError, RuntimeError):
        return False
    return True
