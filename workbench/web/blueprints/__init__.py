"""Web 路由模块 - Blueprint 集合

- repos_bp.py: 代码仓（增删查、历史分页、权限组）
- org_units_bp.py: 组织单元
"""

from workbench.web.blueprints.org_units_bp import org_units_bp
from workbench.web.blueprints.repos_bp import repos_bp

__all__ = [
    "repos_bp",
    "org_units_bp",
]
