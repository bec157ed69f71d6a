class ResourceValidatorError(Exception):
    """系统基础异常类"""
    def __init__(self, message: str, context: dict | None = None) -> None:
        super().__init__(message)
        self.context = context or {}

class ResourceLoadError(ResourceValidatorError):
    """
    资源加载失败（不可重试）
    场景：文件不存在、无读取权限、不是 PE 映像
    """
    pass

class MalformedResourceError(ResourceLoadError):
    """
    资源目录结构损坏
    场景：偏移量越界、目录层级出现环
    """
    pass

class ConfigurationError(ResourceValidatorError):
    """配置错误，如未知代码页、工作线程数非法"""
    pass
