from enum import Enum


class PaymentStatus(str, Enum):
    pending = "pending"
    successful = "successful"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.pending


class GatewayName(str, Enum):
    PAYSTACK = "paystack"
    FLUTTERWAVE = "flutterwave"
    GLOBALPAY = "global"
    SANDBOX = "sandbox"


class StudentLevel(str, Enum):
    L100 = "L100"
    L200 = "L200"
    L300 = "L300"
    L400 = "L400"
    L500 = "L500"
    L600 = "L600"
    ALL = "ALL"


class PaymentAuditAction(str, Enum):
    CREATE = "CREATE"
    GATEWAY_START = "GATEWAY_START"
    GATEWAY_START_FAILED = "GATEWAY_START_FAILED"
    VERIFY_SUCCESS = "VERIFY_SUCCESS"
    VERIFY_FAILED = "VERIFY_FAILED"
