"""Publisher registry: maps platform -> lazy-import class path."""

from postflow.platforms.base import PublisherAdapter

AVAILABLE_PUBLISHERS: dict[str, str] = {
    "twitter": "postflow.platforms.twitter.TwitterPublisher",
    "linkedin": "postflow.platforms.linkedin.LinkedInPublisher",
    "facebook": "postflow.platforms.facebook.FacebookPublisher",
    "instagram": "postflow.platforms.instagram.InstagramPublisher",
}

_instances: dict[str, PublisherAdapter] = {}


def import_publisher(dotted_path: str):
    """Import a publisher class from its dotted module path."""
    import importlib

    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


def get_publisher(platform: str) -> PublisherAdapter | None:
    """Return the publisher for a platform, or None if none is available."""
    if platform not in _instances:
        dotted_path = AVAILABLE_PUBLISHERS.get(platform)
        if not dotted_path:
            return None
        _instances[platform] = import_publisher(dotted_path)()
    return _instances[platform]
