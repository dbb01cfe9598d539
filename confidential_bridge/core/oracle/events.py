"""
DecryptionRequest event decoding.

    event DecryptionRequest(
        uint256 indexed counter,
        uint256 requestID,
        bytes32[] cts,
        address contractCaller,
        bytes4 callbackSelector
    )
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from ..abi import (
    decode_address,
    decode_bytes4,
    decode_bytes32_array,
    decode_uint,
    encode_arguments,
    event_topic,
    split_words,
    strip_0x,
    to_hex,
)
from ..ledger.models import LogEntry

logger = logging.getLogger(__name__)

DECRYPTION_REQUEST_SIGNATURE = "DecryptionRequest(uint256,uint256,bytes32[],address,bytes4)"
DECRYPTION_REQUEST_TOPIC = event_topic(DECRYPTION_REQUEST_SIGNATURE)

_DATA_TYPES = ("uint256", "bytes32[]", "address", "bytes4")


@dataclass(frozen=True)
class DecryptionRequestEvent:
    """Oracle decryption request emitted inside an unwrap transaction."""
    counter: int
    request_id: int
    handles: Tuple[bytes, ...]
    contract_caller: str
    callback_selector: bytes
    emitter: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counter": str(self.counter),
            "requestId": str(self.request_id),
            "handles": [to_hex(h) for h in self.handles],
            "contractCaller": self.contract_caller,
            "callbackSelector": to_hex(self.callback_selector),
            "emitter": self.emitter,
        }


def decode_decryption_request(log: LogEntry) -> Optional[DecryptionRequestEvent]:
    """Decode a log, or return None when it is not a well-formed DecryptionRequest."""
    if len(log.topics) != 2 or log.topics[0].lower() != DECRYPTION_REQUEST_TOPIC:
        return None

    try:
        counter = int(strip_0x(log.topics[1]), 16)
        words = split_words(log.data)
        if len(words) < 5:
            return None
        request_id = decode_uint(words[0])
        handles = decode_bytes32_array(words, decode_uint(words[1]))
        contract_caller = decode_address(words[2])
        callback_selector = decode_bytes4(words[3])
    except (ValueError, IndexError) as exc:
        logger.debug(f"Skipping malformed DecryptionRequest log: {exc}")
        return None

    return DecryptionRequestEvent(
        counter=counter,
        request_id=request_id,
        handles=handles,
        contract_caller=contract_caller,
        callback_selector=callback_selector,
        emitter=log.address or None,
    )


def encode_decryption_request(
    emitter: str,
    counter: int,
    request_id: int,
    handles: Sequence[bytes],
    contract_caller: str,
    callback_selector: bytes,
    log_index: int = 0,
) -> LogEntry:
    """Build the log a ledger emits for a DecryptionRequest."""
    data = encode_arguments(_DATA_TYPES, [request_id, list(handles), contract_caller, callback_selector])
    return LogEntry(
        address=emitter,
        topics=(DECRYPTION_REQUEST_TOPIC, "0x" + format(counter, "064x")),
        data="0x" + data,
        log_index=log_index,
    )
