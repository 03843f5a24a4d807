"""
ModSync - Minecraft 实例发现与模组同步工具
"""

__version__ = "0.1.0"
