"""
Registry-style serial numbers for retirement certificates.

Format::

    <PREFIX>-<YYYY>-<TTTTTTTTTTTT>-<CCCCRRRRRR>

    PREFIX  registry prefix, 2-16 of [A-Z0-9], starting with a letter (default CCR)
    YYYY    UTC year of issuance
    T x 12  low 48 bits of the nanosecond wall clock, upper-case hex
    C x 4   per-process monotonically increasing counter (mod 2**16)
    R x 6   24 bits from ``secrets``

Two serials from one process differ in the counter unless 65,536 are
generated within the same nanosecond tick; serials from different
processes additionally differ in 24 random bits.  The unique constraint on
``retirement_certificates.serial_number`` remains the final arbiter, and
CertificateIssuer re-draws on the rare collision.
"""

from __future__ import annotations

import itertools
import re
import secrets
import threading
import time
from dataclasses import dataclass

from carbon_kernel.domain.clock import Clock, SystemClock

DEFAULT_SERIAL_PREFIX = "CCR"

_PREFIX_RE = re.compile(r"^[A-Z][A-Z0-9]{1,15}$")

SERIAL_PATTERN = re.compile(
    r"^(?P<prefix>[A-Z][A-Z0-9]{1,15})"
    r"-(?P<year>\d{4})"
    r"-(?P<stamp>[0-9A-F]{12})"
    r"-(?P<counter>[0-9A-F]{4})(?P<entropy>[0-9A-F]{6})$"
)

_counter = itertools.count()
_counter_lock = threading.Lock()


def _next_counter() -> int:
    with _counter_lock:
        return next(_counter) & 0xFFFF


@dataclass(frozen=True)
class SerialParts:
    prefix: str
    year: int
    stamp: int
    counter: int
    entropy: int


class SerialNumberGenerator:
    """
    Callable producing a fresh serial on every call.

    Contract:
        Thread-safe.  The issuer accepts any ``Callable[[], str]`` so tests
        can inject a generator that deliberately repeats itself.
    """

    def __init__(self, prefix: str = DEFAULT_SERIAL_PREFIX, clock: Clock | None = None):
        if not _PREFIX_RE.match(prefix):
            raise ValueError(
                f"Serial prefix must be 2-16 upper-case letters/digits starting "
                f"with a letter, got {prefix!r}"
            )
        self.prefix = prefix
        self._clock = clock or SystemClock()

    def __call__(self) -> str:
        year = self._clock.now().year
        stamp = time.time_ns() & 0xFFFF_FFFF_FFFF
        counter = _next_counter()
        entropy = secrets.randbits(24)
        return f"{self.prefix}-{year:04d}-{stamp:012X}-{counter:04X}{entropy:06X}"


def parse_serial(serial_number: str) -> SerialParts | None:
    """Split a well-formed serial into its parts; None if malformed."""
    match = SERIAL_PATTERN.match(serial_number or "")
    if match is None:
        return None
    return SerialParts(
        prefix=match["prefix"],
        year=int(match["year"]),
        stamp=int(match["stamp"], 16),
        counter=int(match["counter"], 16),
        entropy=int(match["entropy"], 16),
    )


def is_well_formed(serial_number: str) -> bool:
    return parse_serial(serial_number) is not None
