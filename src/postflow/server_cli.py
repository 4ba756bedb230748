"""CLI entry points for the postflow API server and one-off sweeps."""

import argparse
import asyncio
import json
import os


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="postflow-server",
        description="postflow API server: scheduled social publishing",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database, no Redis required",
    )
    args = parser.parse_args(argv)

    if args.local:
        os.environ["POSTFLOW_LOCAL_MODE"] = "1"

    import uvicorn

    uvicorn.run("postflow.main:app", host=args.host, port=args.port)


async def _sweep_once() -> dict:
    import httpx

    from postflow.config import settings
    from postflow.db.engine import create_db_engine, create_session_factory
    from postflow.main import _connect_redis, build_executor

    engine = create_db_engine()
    redis = _connect_redis()
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
            executor = build_executor(create_session_factory(engine), client, redis)
            result = await executor.sweep()
    finally:
        if redis is not None:
            await redis.aclose()
        await engine.dispose()
    return result.model_dump(mode="json", exclude_none=True)


def sweep(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="postflow-sweep",
        description="Run one sweep over due jobs and print the JSON summary",
    )
    parser.add_argument("--local", action="store_true", help="Use the local SQLite database")
    args = parser.parse_args(argv)

    if args.local:
        os.environ["POSTFLOW_LOCAL_MODE"] = "1"

    print(json.dumps(asyncio.run(_sweep_once()), indent=2))


if __name__ == "__main__":
    main()
