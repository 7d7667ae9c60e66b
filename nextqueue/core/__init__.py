"""
核心模块 - 抽象接口和依赖注入容器
"""
