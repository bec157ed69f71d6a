import contextvars

# Global context var for Trace ID
trace_id_var = contextvars.ContextVar("trace_id", default="-")

# 当前正在校验的文件 (仅用于日志上下文)
current_file_var = contextvars.ContextVar("current_file", default=None)
