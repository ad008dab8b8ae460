"""
核心配置、日志、错误与运行状态
"""
