"""Docker-style instance names.

Combines an adjective and a noun into a memorable identifier for a
running Arc instance, e.g. ``mellow-falcon``.
"""

import random
import re
import time
from collections.abc import Collection

ADJECTIVES: tuple[str, ...] = (
    "admiring", "adoring", "agitated", "amazing", "awesome", "blissful", "bold",
    "brave", "busy", "calm", "charming", "clever", "cool", "dazzling",
    "determined", "devoted", "dreamy", "eager", "ecstatic", "elastic",
    "energetic", "fancy", "festive", "focused", "friendly", "funny", "gallant",
    "generous", "gentle", "gifted", "happy", "hopeful", "humble", "jolly",
    "joyful", "kind", "laughing", "loving", "lucky", "marvelous", "mellow",
    "merry", "modest", "mystical", "nice", "noble", "optimistic", "peaceful",
    "playful", "pleasant", "plucky", "proud", "quirky", "radiant", "relaxed",
    "reliable", "serene", "sharp", "silly", "smart", "spirited", "splendid",
    "steadfast", "stoic", "sweet", "thoughtful", "tranquil", "upbeat",
    "vigilant", "vigorous", "vivacious", "warm", "whimsical", "wise", "witty",
    "youthful", "zealous", "zen",
)  # fmt: skip

NOUNS: tuple[str, ...] = (
    "albatross", "alpaca", "antelope", "badger", "beaver", "bison", "bobcat",
    "buffalo", "camel", "cheetah", "condor", "cougar", "coyote", "crane",
    "dingo", "dolphin", "dove", "eagle", "egret", "falcon", "ferret", "finch",
    "flamingo", "fox", "gazelle", "gecko", "gibbon", "heron", "hedgehog",
    "ibis", "iguana", "impala", "jackal", "jaguar", "kestrel", "koala",
    "lemur", "leopard", "lighthouse", "llama", "lynx", "magpie", "manatee",
    "marten", "meerkat", "mongoose", "moose", "narwhal", "newt", "ocelot",
    "osprey", "otter", "owl", "panda", "panther", "pelican", "penguin",
    "puffin", "quail", "rabbit", "raccoon", "raven", "robin", "salmon",
    "seal", "sparrow", "stork", "swan", "swift", "tapir", "tiger", "toucan",
    "turtle", "walrus", "weasel", "whale", "wombat", "wren", "yak", "zebra",
)  # fmt: skip

_VALID_NAME = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
_INVALID_CHARS = re.compile(r"[^a-z0-9]")
_REPEATED_HYPHENS = re.compile(r"-{2,}")
_MAX_LENGTH = 63
_MAX_ATTEMPTS = 100


def generate_name() -> str:
    """Generate a random ``adjective-noun`` name."""
    return f"{random.choice(ADJECTIVES)}-{random.choice(NOUNS)}"  # noqa: S311


def generate_unique_name(existing: Collection[str]) -> str:
    """Generate a random name that is not already in use.

    Args:
        existing: Names already taken by live instances.

    Returns:
        A name not in `existing`. Falls back to a timestamp-based name if
        the random space appears exhausted.
    """
    for _ in range(_MAX_ATTEMPTS):
        name = generate_name()
        if name not in existing:
            return name
    return f"arc-{int(time.time())}"


def is_valid_name(name: str) -> bool:
    """Check whether a name is a valid instance name.

    Valid names are 1-63 characters of lowercase letters, digits and
    hyphens, starting and ending with a letter or digit.
    """
    return _VALID_NAME.fullmatch(name) is not None


def sanitize_name(name: str) -> str:
    """Turn a user-supplied name into a valid instance name.

    Args:
        name: The raw name from configuration.

    Returns:
        The sanitized name, or a random name if nothing usable remains.
    """
    sanitized = _INVALID_CHARS.sub("-", name.lower())
    sanitized = _REPEATED_HYPHENS.sub("-", sanitized).strip("-")
    sanitized = sanitized[:_MAX_LENGTH].rstrip("-")
    return sanitized if sanitized and is_valid_name(sanitized) else generate_name()
