"""Fixed-size binary messages exchanged between coordinator and workers.

Each worker channel carries exactly one request and one response:

* request  (coordinator -> worker): ``<ii`` start_index, count
* response (worker -> coordinator): ``<i``  correct-prediction count
"""

from __future__ import annotations

import struct

from knn_classify.errors import ProtocolError
from knn_classify.schemas.assignment import WorkAssignment

_REQUEST = struct.Struct("<ii")
_RESPONSE = struct.Struct("<i")


def encode_assignment(assignment: WorkAssignment) -> bytes:
    return _REQUEST.pack(assignment.start_index, assignment.count)


def decode_assignment(payload: bytes) -> WorkAssignment:
    """Parse a request. Partial or oversized messages are rejected."""
    if len(payload) != _REQUEST.size:
        raise ProtocolError(
            f"Assignment message is {len(payload)} bytes, expected {_REQUEST.size}"
        )
    start_index, count = _REQUEST.unpack(payload)
    if start_index < 0 or count < 0:
        raise ProtocolError(
            f"Invalid assignment start_index={start_index} count={count}"
        )
    return WorkAssignment(start_index=start_index, count=count)


def encode_result(correct: int) -> bytes:
    return _RESPONSE.pack(correct)


def decode_result(payload: bytes) -> int:
    """Parse a response carrying one non-negative count."""
    if len(payload) != _RESPONSE.size:
        raise ProtocolError(
            f"Result message is {len(payload)} bytes, expected {_RESPONSE.size}"
        )
    (correct,) = _RESPONSE.unpack(payload)
    if correct < 0:
        raise ProtocolError(f"Negative result {correct}")
    return correct
