"""
工具模块 - 配置和日志
"""
