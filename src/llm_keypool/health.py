"""Periodic background revalidation of stored keys.

One sweep runs immediately, then one every `interval` seconds. Each sweep is
a detached task, so a slow probe can make sweeps overlap; nothing prevents
that. stop() ends the loop, as does cancelling the task running run(). A
sweep already in flight is left to finish, but no new one is scheduled.

A checker built without a validator creates its own and closes it when run()
returns (or via aclose()). A validator passed in stays owned by the caller.
"""

import asyncio
import logging

from llm_keypool.errors import KeyPoolError, NotFound
from llm_keypool.store import CredentialStore
from llm_keypool.validator import KeyValidator, ValidationResult

log = logging.getLogger(__name__)


class HealthChecker:
    def __init__(
        self,
        store: CredentialStore,
        validator: KeyValidator | None = None,
        interval: float = 300.0,
        timeout: float = 10.0,
    ):
        self.store = store
        self.interval = interval
        self.timeout = timeout
        self._owns_validator = validator is None
        self.validator = validator or KeyValidator(timeout=timeout)
        self._stop: asyncio.Event | None = None
        self._sweeps: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._stop is not None and not self._stop.is_set()

    async def run(self, providers: dict[str, list[str]]) -> None:
        if self._owns_validator and self.validator.closed:
            self.validator = KeyValidator(timeout=self.timeout)
        self._stop = asyncio.Event()
        try:
            self._spawn(providers)
            while not self._stop.is_set():
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    self._spawn(providers)
        finally:
            self._stop.set()
            if self._owns_validator:
                # in-flight sweeps still hold the client
                await asyncio.gather(*self._sweeps, return_exceptions=True)
                await self.validator.aclose()

    def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    async def aclose(self) -> None:
        if self._owns_validator:
            await self.validator.aclose()

    def _spawn(self, providers):
        task = asyncio.create_task(self.sweep(providers))
        # Keep a reference until done so the task isn't garbage-collected
        self._sweeps.add(task)
        task.add_done_callback(self._sweeps.discard)

    async def sweep(self, providers: dict[str, list[str]]) -> None:
        try:
            results = await self.check_all(providers)
        except Exception:
            log.exception("health sweep failed")
            return

        for provider, by_name in results.items():
            for name, result in by_name.items():
                try:
                    self.store.set_health(provider, name, result.valid)
                    if not result.valid:
                        self.store.record_error(provider, name, result.message)
                except NotFound:
                    # deleted while the probe was running
                    continue
                if not result.valid:
                    log.warning("%s key %s failed validation: %s", provider, name, result.message)

    async def check_all(
        self, providers: dict[str, list[str]]
    ) -> dict[str, dict[str, ValidationResult]]:
        results: dict[str, dict[str, ValidationResult]] = {}
        for provider, names in providers.items():
            results[provider] = {}
            for name in names:
                try:
                    key = self.store.get(provider, name)
                except KeyPoolError as e:
                    results[provider][name] = ValidationResult(
                        valid=False,
                        provider=provider,
                        name=name,
                        message=f"Failed to retrieve key: {e}",
                    )
                    continue
                results[provider][name] = await self.validator.validate(provider, name, key)
        return results

    def health_status(self, providers: dict[str, list[str]]) -> dict[str, dict[str, bool]]:
        status: dict[str, dict[str, bool]] = {}
        for provider, names in providers.items():
            status[provider] = {}
            for name in names:
                try:
                    status[provider][name] = self.store.is_healthy(provider, name)
                except NotFound:
                    status[provider][name] = False
        return status
