import asyncio
import threading
import time
import sys
import click
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

SPINNER_FRAMES = "|/-\\"


def _spin(text: str, interval: float, stop_event: threading.Event) -> None:
    i = 0
    while not stop_event.is_set():
        sys.stdout.write(f"\r{text} {SPINNER_FRAMES[i % len(SPINNER_FRAMES)]}")
        sys.stdout.flush()
        i += 1
        time.sleep(interval)

    sys.stdout.write("\r" + " " * (len(text) + 2) + "\r")
    sys.stdout.flush()


async def run(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    text: str = "Выполнение",
    interval: float = 0.1,
    spinner: bool = None,
    **kwargs: Any,
) -> T:
    """
    Ждёт асинхронную func, пока в отдельном потоке крутится спиннер.

    В CI (stdout не терминал) спиннер не рисуется — только итоговая строка,
    чтобы не засорять лог job'а символами \\r.
    """
    if spinner is None:
        spinner = sys.stdout.isatty()

    stop_event = threading.Event()
    thread = None
    if spinner:
        thread = threading.Thread(target=_spin, args=(text, interval, stop_event), daemon=True)
        thread.start()

    success = False
    try:
        result = await func(*args, **kwargs)
        success = True
        return result
    finally:
        stop_event.set()
        if thread is not None:
            await asyncio.to_thread(thread.join)

        if success:
            click.echo(f"{text} - ✅ Успешно")
        else:
            click.echo(f"{text} - ❌ Ошибка")
