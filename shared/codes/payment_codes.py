"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Storefront polling: order exists locally but is not paid yet
    ORDER_PAYING = 101

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    # Gateway did not answer within the configured timeouts
    TIMEOUT = 60003
    DECRYPTION_ERROR = 60005


# Gateway trade state -> local order status name. Values not present here
# (NOTPAY, USERPAYING, REFUND) leave the order untouched.
TRADE_STATE_TO_ORDER_STATUS = {
    "SUCCESS": "SUCCESS",
    "CLOSED": "CLOSED",
    "PAYERROR": "CLOSED",
    "REVOKED": "CLOSED",
}

# Alipay trade_status normalised to the WeChat trade_state vocabulary so the
# reconciliation core reasons about a single set of states.
ALIPAY_TRADE_STATUS_TO_TRADE_STATE = {
    "WAIT_BUYER_PAY": "NOTPAY",
    "TRADE_SUCCESS": "SUCCESS",
    "TRADE_FINISHED": "SUCCESS",
    "TRADE_CLOSED": "CLOSED",
}

# Gateway refund status -> local refund status name. PROCESSING is absent on
# purpose: it is not terminal.
REFUND_STATUS_TO_LOCAL = {
    "SUCCESS": "SUCCESS",
    "REFUND_SUCCESS": "SUCCESS",
    "ABNORMAL": "ABNORMAL",
    "CLOSED": "ABNORMAL",
    "REFUND_FAIL": "ABNORMAL",
}
