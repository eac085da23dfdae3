"""通用工具"""
