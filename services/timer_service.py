"""
Сервис периодических таймеров
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Union[None, Awaitable[None]]]

class TimerService:
    """Отменяемые периодические таймеры на asyncio

    Таймер только будит обработчик; сколько времени прошло, обработчик
    считает сам по часам.
    """

    def __init__(self):
        self.active_timers: Dict[str, asyncio.Task] = {}

    def start_timer(self, name: str, interval_seconds: float, callback: TimerCallback) -> bool:
        """Запуск (или перезапуск) именованного таймера"""
        try:
            # Останавливаем предыдущий таймер с тем же именем
            self.stop_timer(name)

            timer_task = asyncio.get_running_loop().create_task(
                self._timer_worker(name, interval_seconds, callback)
            )
            self.active_timers[name] = timer_task

            logger.debug(f"⏰ Timer started: {name} (every {interval_seconds}s)")
            return True

        except RuntimeError as e:
            logger.error(f"❌ Failed to start timer {name}: {e}")
            return False

    def stop_timer(self, name: str) -> bool:
        """Остановка таймера"""
        timer_task = self.active_timers.pop(name, None)
        if timer_task is None:
            return False

        if not timer_task.done():
            timer_task.cancel()
        logger.debug(f"⏹️ Timer stopped: {name}")
        return True

    def is_timer_active(self, name: str) -> bool:
        """Проверка активности таймера"""
        return name in self.active_timers and not self.active_timers[name].done()

    def get_timer_info(self, name: str) -> Optional[Dict]:
        """Получение информации о таймере"""
        if self.is_timer_active(name):
            return {
                "active": True,
                "name": name
            }
        return None

    async def _timer_worker(self, name: str, interval_seconds: float, callback: TimerCallback):
        """Рабочий процесс таймера"""
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    result = callback()
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"❌ Timer callback {name} failed: {e}")

        except asyncio.CancelledError:
            logger.debug(f"⏹️ Timer {name} cancelled")
            raise
        finally:
            current = self.active_timers.get(name)
            if current is not None and current is asyncio.current_task():
                del self.active_timers[name]

    async def cleanup_all_timers(self):
        """Очистка всех активных таймеров при остановке"""
        tasks = list(self.active_timers.values())
        for name in list(self.active_timers.keys()):
            self.stop_timer(name)

        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info("🧹 All timers cleaned up")
