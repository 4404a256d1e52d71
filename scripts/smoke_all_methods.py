#!/usr/bin/env python3
"""Integration check: exercise every public client method against a live endpoint.

Runs against the local storage emulator by default
(``docker run -p 10001:10001 mcr.microsoft.com/azure-storage/azurite``);
set AZQUEUE_ACCOUNT_NAME / AZQUEUE_ACCOUNT_KEY to target a real account.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time

from azqueue_sdk import (
    AccessPolicy,
    AccessPolicyPermission,
    LogOptions,
    PipelineOptions,
    QueueServiceClient,
    RetryOptions,
    SharedKeyCredential,
    SignedIdentifier,
    StorageError,
    new_pipeline,
)

EMULATOR_ACCOUNT = "devstoreaccount1"
EMULATOR_KEY = "Eby8vdM02xNOcqFlqUwJPLlmEtlCDXJ1OUzFT50uSRZ6IFsuFq2UVErCz4I6tq/K1SZFPTOtr/KBHBeksoGMGw=="

passed: list[str] = []
failed: list[tuple[str, str]] = []


def ok(name: str, result: object = None) -> None:
    tag = type(result).__name__ if result is not None else "None"
    print(f"  PASS  {name}  -> {tag}")
    passed.append(name)


def fail(name: str, err: Exception) -> None:
    msg = f"{type(err).__name__}: {err}"[:200]
    print(f"  FAIL  {name}  -> {msg}")
    failed.append((name, msg))


async def run(name: str, coro, *, expect_code: str | None = None):
    """Await coro, record pass/fail; ``expect_code`` marks an expected service error."""
    try:
        result = await coro
    except StorageError as e:
        if expect_code and e.service_code == expect_code:
            ok(name, e)
        else:
            fail(name, e)
        return None
    except Exception as e:
        fail(name, e)
        return None
    if expect_code:
        fail(name, RuntimeError(f"expected {expect_code}"))
        return None
    ok(name, result)
    return result


def _endpoint() -> tuple[SharedKeyCredential, str]:
    account = os.getenv("AZQUEUE_ACCOUNT_NAME")
    if account and os.getenv("AZQUEUE_ACCOUNT_KEY"):
        return SharedKeyCredential.from_env(), f"https://{account}.queue.core.windows.net"
    return SharedKeyCredential(EMULATOR_ACCOUNT, EMULATOR_KEY), f"http://127.0.0.1:10001/{EMULATOR_ACCOUNT}"


async def main() -> int:
    logging.basicConfig(level=logging.WARNING)
    credential, url = _endpoint()
    options = PipelineOptions(log=LogOptions(), retry=RetryOptions(max_tries=2, try_timeout=15))
    queue_name = f"smoke{int(time.time())}"

    async with new_pipeline(credential, options) as pipeline:
        service = QueueServiceClient(url, pipeline, allow_http=True)
        queue = service.get_queue_client(queue_name)
        messages = queue.get_messages_client()

        print("\n=== Queues ===")
        await run("create", queue.create(metadata={"createdby": "smoke"}))
        await run("get_properties", queue.get_properties())
        await run("set_metadata", queue.set_metadata({"createdby": "smoke", "stage": "2"}))
        await run("list_queues", service.list_queues(prefix="smoke", include_metadata=True))
        await run(
            "set_access_policy",
            queue.set_access_policy(
                [
                    SignedIdentifier(id="Managers", access_policy=AccessPolicy(permission=str(AccessPolicyPermission(add=True)))),
                    SignedIdentifier(id="Engineers", access_policy=AccessPolicy(permission="rp")),
                ]
            ),
        )
        await run("get_access_policy", queue.get_access_policy())
        await run(
            "get_properties (missing queue)",
            service.get_queue_client(f"{queue_name}-missing").get_properties(),
            expect_code="QueueNotFound",
        )

        print("\n=== Messages ===")
        await run("enqueue", messages.enqueue("first"))
        await run("enqueue (ttl)", messages.enqueue("second", time_to_live=3600))
        await run("peek", messages.peek(max_messages=2))
        dequeued = await run("dequeue", messages.dequeue(max_messages=1, visibility_timeout=30))
        if dequeued:
            message = dequeued[0]
            updated = await run("update", messages.update(message.message_id, message.pop_receipt, 0, text="changed"))
            if updated:
                await run("delete", messages.delete(message.message_id, updated.pop_receipt))
        await run("clear", messages.clear())

        print("\n=== Cleanup ===")
        await run("delete queue", queue.delete())

    print("\n" + "=" * 60)
    print(f"PASSED: {len(passed)}   FAILED: {len(failed)}")
    if failed:
        print("\nFailed methods:")
        for name, err in failed:
            print(f"  - {name}: {err}")
    print("=" * 60)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
