"""
Myers shortest-edit-script diff over token sequences.

Produces the minimal list of equal/delete/insert operations that turns the
original token sequence into the edited one. O((N+M)·D) time, where D is the
edit distance.
"""

from dataclasses import dataclass
from typing import Dict, List, Literal, Sequence


OpKind = Literal["equal", "delete", "insert"]


class DiffConsistencyError(RuntimeError):
    """The search ran past N+M edits. Only possible with a broken implementation."""


@dataclass(frozen=True)
class DiffOperation:
    """
    One step of an edit script.

    index is the position in the original sequence for equal/delete, and the
    position in the edited sequence for insert.
    """
    kind: OpKind
    index: int
    token: str

    @classmethod
    def equal(cls, index: int, token: str) -> "DiffOperation":
        return cls("equal", index, token)

    @classmethod
    def delete(cls, index: int, token: str) -> "DiffOperation":
        return cls("delete", index, token)

    @classmethod
    def insert(cls, index: int, token: str) -> "DiffOperation":
        return cls("insert", index, token)


def diff(original: Sequence[str], edited: Sequence[str]) -> List[DiffOperation]:
    """
    Compute the shortest edit script from original to edited.

    Args:
        original: Tokens before the edit
        edited: Tokens after the edit

    Returns:
        Operations in left-to-right order

    Raises:
        DiffConsistencyError: the search exhausted N+M edits without reaching
            the end of both sequences
    """
    n, m = len(original), len(edited)
    max_d = n + m

    # Furthest x reached on each diagonal k = x - y
    v: Dict[int, int] = {1: 0}
    trace: List[Dict[int, int]] = []

    for d in range(max_d + 1):
        trace.append(dict(v))

        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and v[k - 1] < v[k + 1]):
                x = v[k + 1]
            else:
                x = v[k - 1] + 1
            y = x - k

            while x < n and y < m and original[x] == edited[y]:
                x += 1
                y += 1

            v[k] = x

            if x >= n and y >= m:
                return _backtrack(trace, original, edited)

    raise DiffConsistencyError(f"No edit script within {max_d} edits")


def _backtrack(
    trace: List[Dict[int, int]],
    original: Sequence[str],
    edited: Sequence[str],
) -> List[DiffOperation]:
    """Walk the per-d snapshots back from (N, M) to (0, 0)."""
    x, y = len(original), len(edited)
    reversed_ops: List[DiffOperation] = []

    for d in range(len(trace) - 1, -1, -1):
        v = trace[d]
        k = x - y

        if k == -d or (k != d and v[k - 1] < v[k + 1]):
            prev_k = k + 1
        else:
            prev_k = k - 1

        prev_x = v[prev_k]
        prev_y = prev_x - prev_k

        while x > prev_x and y > prev_y:
            x -= 1
            y -= 1
            reversed_ops.append(DiffOperation.equal(x, original[x]))

        if d > 0:
            if x == prev_x:
                y -= 1
                reversed_ops.append(DiffOperation.insert(y, edited[y]))
            else:
                x -= 1
                reversed_ops.append(DiffOperation.delete(x, original[x]))

    reversed_ops.reverse()
    return reversed_ops


def apply_diff(original: Sequence[str], operations: Sequence[DiffOperation]) -> List[str]:
    """
    Replay an edit script against the original tokens.

    Raises:
        ValueError: an equal/delete does not match the original at its index,
            or an operation has an unknown kind
    """
    result: List[str] = []
    position = 0

    for op in operations:
        if op.kind == "equal" or op.kind == "delete":
            if op.index != position or position >= len(original) or original[position] != op.token:
                raise ValueError(f"{op.kind} {op.token!r} does not match original at {op.index}")
            position += 1
            if op.kind == "equal":
                result.append(op.token)
        elif op.kind == "insert":
            result.append(op.token)
        else:
            raise ValueError(f"Unknown diff operation: {op.kind!r}")

    if position != len(original):
        raise ValueError(f"Script consumed {position} of {len(original)} original tokens")

    return result
