"""Worker registry mapping job kinds to worker classes."""

from postflow.workers.base import BaseWorker


def _build_registry() -> dict[str, type[BaseWorker]]:
    from postflow.workers.generate_worker import GenerateContentWorker
    from postflow.workers.publish_worker import PublishWorker

    return {
        "publish": PublishWorker,
        "ai_generate": GenerateContentWorker,
        "image_generate": GenerateContentWorker,
    }


_registry: dict[str, type[BaseWorker]] = {}


def _ensure_registry() -> None:
    if not _registry:
        _registry.update(_build_registry())


def get_worker(kind: str) -> BaseWorker | None:
    """Get a worker instance for a job kind."""
    _ensure_registry()
    cls = _registry.get(kind)
    return cls() if cls else None
