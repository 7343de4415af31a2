"""
统一错误处理：BaseAppException 及子类
所有异常格式：type, code, message, detail, http_status
发药相关的业务错误也挂在这里，View 只需 raise
"""


class BaseAppException(Exception):
    """基类：统一错误格式"""
    type = "error"
    code = "UNKNOWN"
    message = "Unknown error"
    http_status = 400

    def __init__(self, message=None, code=None, detail=None, http_status=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.code = code or self.code
        self.detail = detail if detail is not None else {}
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self):
        return {
            "success": False,
            "type": self.type,
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }


class ValidationError(BaseAppException):
    """验证错误：输入格式不对，由 serializer 检查"""
    type = "validation"
    code = "VALIDATION_ERROR"
    message = "Validation failed"
    http_status = 400


class BlockError(BaseAppException):
    """业务阻止：业务规则不允许"""
    type = "block"
    code = "BLOCK"
    message = "Operation blocked"
    http_status = 409


# ---------------------------------------------------------------------------
# 发药 / 计费
# ---------------------------------------------------------------------------

class OutOfRange(ValidationError):
    """数量或单价越界：负数、超过当前库存"""
    code = "OUT_OF_RANGE"
    message = "Quantity or price out of range"


class ExceedsPrescribed(ValidationError):
    """发药数量超过处方数量"""
    code = "EXCEEDS_PRESCRIBED"
    message = "Quantity exceeds the prescribed amount"


class IncompleteDraft(BlockError):
    """草稿里还有未处理（pending）的行"""
    code = "INCOMPLETE_DRAFT"
    message = "Every line must be resolved before submitting"


class NothingDispensed(BlockError):
    """所有行都缺货：不落库，交给人工复核或取消处方"""
    code = "NOTHING_DISPENSED"
    message = "No medication was dispensed; review or cancel the prescription"


class InvalidState(BlockError):
    """当前状态不允许该操作"""
    code = "INVALID_STATE"
    message = "Operation not allowed in the current status"


class ConcurrentModification(BlockError):
    """同一处方并发提交，后到者失败"""
    code = "CONCURRENT_MODIFICATION"
    message = "Prescription was modified by another submission"
