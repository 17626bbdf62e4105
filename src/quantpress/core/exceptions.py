"""项目内使用的错误类型与退出码映射。"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """错误类别（封闭集合），退出码仅在进程边界处映射。"""

    MISSING_ARGUMENT = "missing-argument"
    READ_ERROR = "read-error"
    INVALID_ARGUMENT = "invalid-argument"
    NOT_OVERWRITING = "not-overwriting"
    WRITE_ERROR = "write-error"
    OUT_OF_MEMORY = "out-of-memory"
    UNSUPPORTED = "unsupported"
    ENCODING_ERROR = "encoding-error"
    WRONG_INPUT_COLOR_TYPE = "wrong-input-color-type"
    INTERNAL_ERROR = "internal-error"
    QUALITY_TOO_LOW = "quality-too-low"


# 与历史版本保持一致，脚本依赖这些数值。
EXIT_CODES: dict[ErrorKind, int] = {
    ErrorKind.MISSING_ARGUMENT: 1,
    ErrorKind.READ_ERROR: 2,
    ErrorKind.INVALID_ARGUMENT: 4,
    ErrorKind.NOT_OVERWRITING: 15,
    ErrorKind.WRITE_ERROR: 16,
    ErrorKind.OUT_OF_MEMORY: 17,
    ErrorKind.UNSUPPORTED: 18,
    ErrorKind.ENCODING_ERROR: 25,
    ErrorKind.WRONG_INPUT_COLOR_TYPE: 26,
    ErrorKind.INTERNAL_ERROR: 35,
    ErrorKind.QUALITY_TOO_LOW: 99,
}


def exit_code_for(kind: Optional[ErrorKind]) -> int:
    """将错误类别转换为进程退出码，None 表示成功。"""

    if kind is None:
        return 0
    return EXIT_CODES[kind]


class QuantPressError(Exception):
    """基础异常类型，携带错误类别。"""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class MissingArgumentError(QuantPressError):
    """没有可处理的输入。"""

    kind = ErrorKind.MISSING_ARGUMENT


class InvalidArgumentError(QuantPressError):
    """参数不合法或互相矛盾。"""

    kind = ErrorKind.INVALID_ARGUMENT


class ImageReadError(QuantPressError):
    """源文件无法读取或解码。"""

    kind = ErrorKind.READ_ERROR


class WrongInputColorTypeError(QuantPressError):
    """像素数据不被量化引擎接受。"""

    kind = ErrorKind.WRONG_INPUT_COLOR_TYPE


class EncodingError(QuantPressError):
    """PNG 编码失败。"""

    kind = ErrorKind.ENCODING_ERROR


class QualityTooLowError(QuantPressError):
    """量化结果低于设定的最低质量。"""

    kind = ErrorKind.QUALITY_TOO_LOW


class NotOverwritingError(QuantPressError):
    """目标已存在或新文件没有更小，放弃写入。"""

    kind = ErrorKind.NOT_OVERWRITING


class ImageWriteError(QuantPressError):
    """输出写入失败。"""

    kind = ErrorKind.WRITE_ERROR


class EngineError(QuantPressError):
    """量化引擎报告的错误，类别由引擎给出。"""
