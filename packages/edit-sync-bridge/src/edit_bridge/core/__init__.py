"""核心契约与错误类型。"""
