"""CosmWasmスマートコントラクト静的解析ツール。"""

__version__ = "0.1.0"
