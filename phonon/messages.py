"""Message names and envelope exchanged with the remote pairing server."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

__all__ = ["MessageName", "Message"]


class MessageName(str, Enum):
    """Names carried by messages on the remote connection."""

    # server to client
    MESSAGE_CONNECTED = "Connected"
    MESSAGE_DISCONNECTED = "Disconnected"
    MESSAGE_ERROR = "Error"
    MESSAGE_PASSTHRU_FAILED = "PassthruFailed"
    MESSAGE_IDENTIFIED_WITH_SERVER = "IdentifiedWithServer"
    MESSAGE_CONNECTED_TO_CARD = "connectedToCard"

    # client to server
    REQUEST_IDENTIFY = "Identify"
    RESPONSE_IDENTIFY = "IdentifyResponse"
    REQUEST_CERTIFICATE = "RequestCert"
    RESPONSE_CERTIFICATE = "ResponseCert"
    REQUEST_NO_OP = "NoOp"
    REQUEST_CONNECT_CARD2CARD = "Connect2Card"
    REQUEST_DISCONNECT_FROM_CARD = "DisconnectFromCard"
    REQUEST_END_SESSION = "EndSession"
    MESSAGE_PHONON_ACK = "AckPhonon"

    # client to client
    REQUEST_VERIFY_PAIRED = "VerifyPairing"
    RESPONSE_VERIFY_PAIRED = "VerifyPairingRespnose"
    REQUEST_CARD_PAIR1 = "CardPair1"
    RESPONSE_CARD_PAIR1 = "CardPair1Response"
    REQUEST_CARD_PAIR2 = "CardPair2"
    RESPONSE_CARD_PAIR2 = "CardPair2Response"
    REQUEST_FINALIZE_CARD_PAIR = "FinalizeCardPair"
    RESPONSE_FINALIZE_CARD_PAIR = "FinalizeCardPairResponse"
    REQUEST_RECEIVE_PHONON = "requestReceivePhonon"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Message:
    """A named message with an opaque payload."""

    name: str
    payload: bytes = b""