"""
Event chain execution engine.

Provides workflow orchestration on top of EventBus, processing events
recursively until no handler produces a follow-up event.
"""

import asyncio
from typing import AsyncGenerator, List

from .events import BaseEvent, BreakEvent, EventBus, Dependencies


class EventChain:
    """Executes event-driven workflows by chaining event handler results."""

    def __init__(
        self,
        event_bus: EventBus,
        deps: Dependencies,
    ) -> None:
        """
        Initialize event chain executor.

        Args:
            event_bus: The event bus to dispatch events through.
            deps: Dependencies container to pass to handlers.
        """
        self.event_bus = event_bus
        self.deps = deps

    async def execute(self, initial_event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Execute event chain starting from initial event.

        Yields:
            Events produced by handlers, in the order they complete.

        Raises:
            Exception: Whatever a handler raised; the chain stops there.
        """
        events_queue: asyncio.Queue = asyncio.Queue()
        failure: List[BaseException] = []

        async def producer():
            try:
                async for event in self._process_event(initial_event):
                    await events_queue.put(event)
            except Exception as e:
                failure.append(e)
            finally:
                await events_queue.put(None)  # completion sentinel

        task = asyncio.create_task(producer())

        while True:
            event = await events_queue.get()
            if event is None:
                break
            yield event

        await task
        if failure:
            raise failure[0]

    async def run(self, initial_event: BaseEvent) -> List[BaseEvent]:
        """Execute the chain to completion and collect every produced event."""
        return [event async for event in self.execute(initial_event)]

    async def _process_event(self, event: BaseEvent) -> AsyncGenerator[BaseEvent, None]:
        """
        Process single event and recursively handle results.

        Args:
            event: The event to process.

        Yields:
            Events from the chain.
        """
        if isinstance(event, BreakEvent):
            return

        async for result in self.event_bus.dispatch(event, self.deps):
            if result is None:
                continue
            if isinstance(result, BaseEvent):
                yield result
                async for e in self._process_event(result):
                    yield e
            else:
                raise TypeError(f"Handler returned unsupported type: {type(result).__name__}")
