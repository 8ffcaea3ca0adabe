"""
Script destinations and the batcher that packs ready work into command lines.

The batcher decides how ready tokens (usually case ids) are split across
lines once, then renders that decision into every destination a stage writes
to. Destinations differ only in formatting: line terminator, binaries
directory, an optional job-submission prefix, an optional header, and whether
lines are shuffled when written.
"""

import logging
import math
import os
import random
import stat
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from ..file_types import GUID_LENGTH
from .error_handling import BatchingError

logger = logging.getLogger(__name__)

LOCAL = "local"
CLUSTER = "cluster"
UNIX = "unix"
CLOUD = "cloud"

SHELL_HEADER = ("#!/bin/bash",)


@dataclass
class ScriptTarget:
    """One output script.

    A target without a path is a null sink: lines written to it are dropped,
    so a stage never needs to know which destinations are configured.
    """

    name: str
    path: Optional[Path] = None
    binaries_directory: str = ""
    line_prefix: str = ""
    line_terminator: str = "\n"
    header: Sequence[str] = ()
    shuffle: bool = False
    executable: bool = False
    lines: List[str] = field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def command_head(self, binary: str, configuration_argument: str = "", arguments: str = "") -> str:
        """Render everything that precedes the tokens on a line."""
        head = f"{self.line_prefix}{self.binaries_directory}{binary}{configuration_argument}"
        if arguments:
            head += f" {arguments}"
        return head

    def write_line(self, line: str) -> None:
        if self.enabled:
            self.lines.append(line)

    def write(self, rng: Optional[random.Random] = None) -> Optional[Path]:
        """Write the collected lines to disk.

        Returns
        -------
        Path or None
            The written path, or None for a disabled target.
        """
        if not self.enabled:
            return None
        lines = list(self.lines)
        if self.shuffle:
            (rng or random.Random()).shuffle(lines)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8", newline="") as f:
            for line in list(self.header) + lines:
                f.write(line + self.line_terminator)
        if self.executable:
            mode = os.stat(self.path).st_mode
            os.chmod(self.path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logger.debug(f"Wrote {len(lines)} lines to {self.name} script {self.path}")
        return self.path


class ScriptTargets:
    """The set of destinations of one run, addressed by name."""

    def __init__(self, targets: Iterable[ScriptTarget]):
        self._targets: Dict[str, ScriptTarget] = {t.name: t for t in targets}

    def __getitem__(self, name: str) -> ScriptTarget:
        return self._targets[name]

    def __iter__(self):
        return iter(self._targets.values())

    def select(self, names: Iterable[str]) -> List[ScriptTarget]:
        """Return the named targets that exist, in the order asked for."""
        return [self._targets[n] for n in names if n in self._targets]

    def total_lines(self) -> int:
        return sum(len(t.lines) for t in self._targets.values())

    def write_all(self, rng: Optional[random.Random] = None) -> List[Path]:
        written = []
        for target in self._targets.values():
            path = target.write(rng)
            if path is not None:
                written.append(path)
        return written


class Batcher:
    """
    Packs tokens into lines under an item cap and a character cap.

    Parameters
    ----------
    max_items_per_line : int
        Hard cap on tokens per line.
    max_chars_per_line : int
        Hard cap on rendered line length.
    desired_parallelism : int
        The number of lines is rounded up to a multiple of this so the work
        spreads evenly over that many machines.
    token_width : int
        Minimum width assumed for every token when computing capacity. The
        widest token of a plan is used when it is wider.
    """

    def __init__(
        self,
        max_items_per_line: int = sys.maxsize,
        max_chars_per_line: int = 5000,
        desired_parallelism: int = 1,
        token_width: int = GUID_LENGTH,
    ):
        self.max_items_per_line = max_items_per_line
        self.max_chars_per_line = max_chars_per_line
        self.desired_parallelism = max(1, desired_parallelism)
        self.token_width = token_width

    def items_per_line(self, prefix_length: int, token_width: Optional[int] = None) -> int:
        """Maximum number of tokens of a given width that fit on one line after a prefix."""
        width = token_width if token_width is not None else self.token_width
        by_chars = (self.max_chars_per_line - prefix_length) // (width + 1)
        return min(self.max_items_per_line, by_chars)

    def plan(self, tokens: Sequence[str], prefix_length: int) -> List[List[str]]:
        """
        Split tokens into balanced lines.

        Parameters
        ----------
        tokens : sequence of str
            Ready tokens, in order.
        prefix_length : int
            Length of the longest command head the lines will be rendered with.

        Returns
        -------
        list of list of str
            Token groups, one per line. Line sizes differ by at most one and
            every rendered line stays within ``max_chars_per_line``.

        Raises
        ------
        BatchingError
            If not even one token fits on a line.
        """
        n = len(tokens)
        if n == 0:
            return []

        width = max(self.token_width, max(len(t) for t in tokens))
        max_per_line = self.items_per_line(prefix_length, width)
        if max_per_line < 1:
            raise BatchingError(
                f"A command head of {prefix_length} characters leaves no room for a "
                f"{width}-character token under {self.max_chars_per_line} characters",
                max_chars=self.max_chars_per_line,
            )

        min_lines = math.ceil(n / max_per_line)
        p = self.desired_parallelism
        line_count = min(n, math.ceil(min_lines / p) * p)

        base, extra = divmod(n, line_count)
        groups = []
        position = 0
        for i in range(line_count):
            count = base + (1 if i < extra else 0)
            groups.append(list(tokens[position:position + count]))
            position += count
        return groups

    def emit(
        self,
        tokens: Sequence[str],
        targets: Sequence[ScriptTarget],
        binary: str,
        configuration_argument: str = "",
        arguments: str = "",
    ) -> int:
        """Plan once and write the same lines to every enabled target.

        Returns
        -------
        int
            Number of lines per target.
        """
        enabled = [t for t in targets if t.enabled]
        if not tokens:
            return 0
        heads = {t.name: t.command_head(binary, configuration_argument, arguments) for t in targets}
        prefix_length = max((len(h) for h in heads.values()), default=0)
        groups = self.plan(tokens, prefix_length)
        for target in enabled:
            head = heads[target.name]
            for group in groups:
                target.write_line(head + "".join(f" {token}" for token in group))
        return len(groups)


def emit_single(
    targets: Sequence[ScriptTarget],
    binary: str,
    configuration_argument: str = "",
    arguments: str = "",
) -> None:
    """Write one unbatched command to every target."""
    for target in targets:
        target.write_line(target.command_head(binary, configuration_argument, arguments))
