"""workbench: 代码仓配置/版本历史管理服务 + AppFlow 流程组合内核"""

__version__ = "0.3.0"
