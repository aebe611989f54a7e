from typing import Any, Dict, Optional
import random
from substrateinterface import Keypair
from scalecodec.utils.ss58 import ss58_encode

from .constants import NETWORKS, PERBILL_PER_PERCENT


def get_network(network: str) -> Dict[str, Any]:
    """
    Look up a network definition

    Raises:
        ValueError: if the network is not supported
    """
    config = NETWORKS.get(network)
    if not config:
        raise ValueError(f"Network {network} not supported")
    return config


def rpc_endpoints(network: str) -> Dict[str, str]:
    """Get all RPC endpoints for a network, keyed by provider name"""
    return get_network(network)["endpoints"]


def random_rpc_endpoint(network: str) -> str:
    """Pick one RPC endpoint of a network at random"""
    return random.choice(list(rpc_endpoints(network).values()))


def perbill_to_percent(perbill: int) -> float:
    """
    Convert an on-chain Perbill ratio to a percentage

    Args:
        perbill: parts per billion (1_000_000_000 == 100%)

    Returns:
        Percentage in [0, 100]
    """
    return int(perbill or 0) / PERBILL_PER_PERCENT


def truncate_address(address: str) -> str:
    """Short label used when an account has no registered identity"""
    if len(address) <= 19:
        return address
    return address[:8] + "..." + address[-8:]


def decode_account_id(account_id: Any, ss58_format: int = 42) -> str:
    """
    Decode a storage-key account id to an SS58 address.

    Accepts an already encoded address, a hex string, raw bytes or the
    nested int sequences some decoders return for AccountId32.
    """
    if isinstance(account_id, str):
        if not account_id.startswith("0x"):
            return account_id
        return ss58_encode(account_id[2:], ss58_format)
    if isinstance(account_id, (bytes, bytearray)):
        return ss58_encode(bytes(account_id).hex(), ss58_format)
    if isinstance(account_id, (list, tuple)):
        if len(account_id) == 1 and not isinstance(account_id[0], int):
            return decode_account_id(account_id[0], ss58_format)
        return ss58_encode(bytes(account_id).hex(), ss58_format)
    raise ValueError(f"Cannot decode account id {account_id!r}")


def decode_identity_data(data: Any) -> Optional[str]:
    """
    Decode an identity `Data` field ({"Raw": ...}) to text, None if unset
    """
    if data is None or data == "None":
        return None
    if isinstance(data, dict):
        if "Raw" not in data:
            return None
        data = data["Raw"]
        if isinstance(data, dict):
            return None
    if isinstance(data, (list, tuple)):
        if len(data) == 1 and isinstance(data[0], (list, tuple)):
            data = data[0]
        data = bytes(data)
    if isinstance(data, str) and data.startswith("0x"):
        try:
            data = bytes.fromhex(data[2:])
        except ValueError:
            return data or None
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8", errors="replace")
    text = str(data).strip()
    return text or None


def identity_display(registration: Any) -> Optional[str]:
    """
    Extract the display name of an `IdentityOf` registration.

    Newer runtimes store `(Registration, Option<Username>)`, older ones the
    bare registration.
    """
    if registration is None:
        return None
    if isinstance(registration, (list, tuple)):
        if not registration:
            return None
        registration = registration[0]
    if not isinstance(registration, dict):
        return None
    info = registration.get("info") or {}
    return decode_identity_data(info.get("display"))


def is_valid_ss58_address(address: str) -> bool:
    """
    Check if a string is a valid SS58 address

    Args:
        address: Address to check

    Returns:
        True if valid SS58 address
    """
    try:
        Keypair(ss58_address=address)
        return True
    except (ValueError, TypeError):
        return False


def format_stake(stake: int, decimals: int = 10, unit: Optional[str] = None) -> str:
    """
    Format a base-unit amount as a decimal string without float rounding

    Args:
        stake: amount in base units (planck)
        decimals: token decimals of the network
        unit: optional token symbol appended to the result
    """
    divisor = 10 ** decimals
    whole, fraction = divmod(int(stake), divisor)
    if fraction == 0:
        text = str(whole)
    else:
        text = f"{whole}.{str(fraction).rjust(decimals, '0').rstrip('0')}"
    return f"{text} {unit}" if unit else text
