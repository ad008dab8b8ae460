"""
中间件
"""
