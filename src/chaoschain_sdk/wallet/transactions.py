"""Build, sign, send and confirm transactions with the agent wallet."""

import logging
from typing import Any, Optional

from web3 import Web3

from ..core.errors import ChaosChainSDKError, ContractError
from .manager import WalletManager

logger = logging.getLogger(__name__)


def _base_params(web3: Web3, wallet: WalletManager, chain_id: int) -> dict[str, Any]:
    return {
        "from": wallet.address,
        "nonce": web3.eth.get_transaction_count(wallet.address),
        "gasPrice": web3.eth.gas_price,
        "chainId": chain_id,
    }


def send_transaction(
    web3: Web3,
    wallet: WalletManager,
    chain_id: int,
    action: str,
    function: Any = None,
    to: Optional[str] = None,
    value: int = 0,
    error_cls: type[ChaosChainSDKError] = ContractError,
) -> dict[str, Any]:
    """Send a contract call or a plain value transfer and wait for its receipt.

    Exactly one of ``function`` (a bound contract function) or ``to`` must be
    given. The call blocks until one receipt is available.

    Args:
        web3: Web3 instance
        wallet: Signing wallet
        chain_id: Chain id for replay protection
        action: Short description used in logs and errors ("register agent")
        function: Bound contract function, e.g. ``contract.functions.register(uri)``
        to: Recipient of a value transfer
        value: Wei to attach
        error_cls: Exception raised on failure

    Returns:
        Transaction receipt

    Raises:
        error_cls: If building, signing or sending fails, or the transaction reverts
    """
    try:
        params = _base_params(web3, wallet, chain_id)
        if function is not None:
            if value:
                params["value"] = value
            tx = function.build_transaction(params)
        else:
            params.pop("from")
            tx = dict(params, to=Web3.to_checksum_address(to), value=value, gas=21000)

        signed_tx = web3.eth.account.sign_transaction(tx, wallet.private_key)
        tx_hash = web3.eth.send_raw_transaction(signed_tx.raw_transaction)
        receipt = web3.eth.wait_for_transaction_receipt(tx_hash)
    except ChaosChainSDKError:
        raise
    except Exception as e:
        raise error_cls(f"Failed to {action}: {e}")

    tx_hex = Web3.to_hex(receipt["transactionHash"])
    if receipt["status"] != 1:
        raise error_cls(f"Failed to {action}: transaction {tx_hex} reverted")

    logger.info(f"{action} confirmed in block {receipt['blockNumber']}: {tx_hex}")
    return receipt
