"""Prefixed random identifiers (thm_xxx, plg_xxx, ...)"""

import logging
import secrets
import string

logger = logging.getLogger(__name__)

DEFAULT_ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
DEFAULT_LENGTH = 12

# Known ID prefixes
THEME_PREFIX = "thm"
PLUGIN_PREFIX = "plg"
COMMAND_PREFIX = "cmd"
CONTAINER_PREFIX = "ctr"
USER_PREFIX = "usr"
TOKEN_PREFIX = "tok"
SESSION_PREFIX = "ses"
REQUEST_PREFIX = "req"

KNOWN_PREFIXES = {
    THEME_PREFIX,
    PLUGIN_PREFIX,
    COMMAND_PREFIX,
    CONTAINER_PREFIX,
    USER_PREFIX,
    TOKEN_PREFIX,
    SESSION_PREFIX,
    REQUEST_PREFIX,
}


class IDGenerator:
    """Generates ``<prefix>_<random>`` identifiers from a cryptographic source"""

    def __init__(self, alphabet: str = DEFAULT_ALPHABET, length: int = DEFAULT_LENGTH):
        if not alphabet:
            logger.warning(f"Empty ID alphabet configured, using default ({len(DEFAULT_ALPHABET)} chars)")
            alphabet = DEFAULT_ALPHABET
        if length <= 0:
            logger.warning(f"Invalid ID length {length}, using default {DEFAULT_LENGTH}")
            length = DEFAULT_LENGTH
        self.alphabet = alphabet
        self.length = length

    def random_part(self) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(self.length))

    def generate(self, prefix: str) -> str:
        """
        Generate a new identifier

        Args:
            prefix: One of the known prefixes (thm, plg, cmd, ...)

        Returns:
            Identifier of the form ``<prefix>_<random>``

        Raises:
            ValueError: If the prefix is unknown
        """
        if prefix not in KNOWN_PREFIXES:
            raise ValueError(f"Unknown ID prefix: {prefix}. Allowed: {sorted(KNOWN_PREFIXES)}")
        return f"{prefix}_{self.random_part()}"
