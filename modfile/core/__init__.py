"""核心模型: 来源、依赖、清单、锁文件"""
