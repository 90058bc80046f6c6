"""
FFPack 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, List, Optional, Tuple


class FFPackError(Exception):
    """FFPack 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    @property
    def transient(self) -> bool:
        """是否为可重试的临时错误"""
        return False

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(FFPackError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class ProviderError(FFPackError):
    """模组来源（Provider）相关错误"""

    def _get_default_code(self) -> str:
        return "E200"


class ProviderUnavailable(ProviderError):
    """Provider 暂时不可用（可重试）"""

    def _get_default_code(self) -> str:
        return "E201"

    @property
    def transient(self) -> bool:
        return True


class ModNotFound(ProviderError):
    """模组不存在（永久错误）"""

    def _get_default_code(self) -> str:
        return "E204"


class ResolutionError(FFPackError):
    """版本解析相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class UnsatisfiableError(ResolutionError):
    """
    约束无解

    ``conflict`` 为首个记录的冲突（决策链 + 排除所有候选版本的约束），
    ``conflicts`` 为搜索过程中遇到的全部冲突。
    """

    def __init__(
        self,
        message: str,
        conflict: Any = None,
        conflicts: Optional[List[Any]] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.conflict = conflict
        self.conflicts = conflicts or ([conflict] if conflict is not None else [])
        if conflict is not None:
            self.context.setdefault("conflict", conflict.describe())

    def _get_default_code(self) -> str:
        return "E301"


class StoreError(FFPackError):
    """制品存储相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


class DigestMismatch(StoreError):
    """摘要校验失败（同一下载描述重试不会改变结果）"""

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.expected = expected
        self.actual = actual
        self.context.setdefault("expected", expected)
        self.context.setdefault("actual", actual)

    def _get_default_code(self) -> str:
        return "E401"


class EntryNotFound(StoreError):
    """存储中不存在该摘要"""

    def _get_default_code(self) -> str:
        return "E404"


class DownloadError(FFPackError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E500"


class DownloadNetworkError(DownloadError):
    """下载网络错误（可重试）"""

    def _get_default_code(self) -> str:
        return "E501"

    @property
    def transient(self) -> bool:
        return True


class PartialFailureReport(DownloadError):
    """部分制品获取失败的汇总报告"""

    def __init__(
        self,
        message: str,
        failures: Optional[List[Tuple[Any, BaseException]]] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.failures = failures or []
        self.context.setdefault(
            "failures",
            {str(ref): str(error) for ref, error in self.failures},
        )

    def _get_default_code(self) -> str:
        return "E510"


class PackagerError(FFPackError):
    """打包相关错误"""

    def _get_default_code(self) -> str:
        return "E600"


class ZipError(PackagerError):
    """ZIP 生成错误"""

    def _get_default_code(self) -> str:
        return "E601"


class MrpackError(PackagerError):
    """Mrpack 生成错误"""

    def _get_default_code(self) -> str:
        return "E602"


class LockFileError(FFPackError):
    """锁文件相关错误"""

    def _get_default_code(self) -> str:
        return "E700"


class CorruptLockFile(LockFileError):
    """锁文件损坏或无法解析"""

    def _get_default_code(self) -> str:
        return "E701"


__all__ = [
    # 基础异常
    "FFPackError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    # Provider 异常
    "ProviderError",
    "ProviderUnavailable",
    "ModNotFound",
    # 解析异常
    "ResolutionError",
    "UnsatisfiableError",
    # 存储异常
    "StoreError",
    "DigestMismatch",
    "EntryNotFound",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    "PartialFailureReport",
    # 打包异常
    "PackagerError",
    "ZipError",
    "MrpackError",
    # 锁文件异常
    "LockFileError",
    "CorruptLockFile",
]
