"""FastAPI 依赖注入工具。"""

from functools import lru_cache

from capstone.services import Services, build_services


@lru_cache(maxsize=1)
def get_services() -> Services:
    """路由共享的服务组装。测试中通过 ``dependency_overrides`` 替换。"""

    return build_services()
