"""API v2 路由包入口。"""

from fastapi import APIRouter

from capstone.api.v2 import auth, deadlines, document_types, evaluations, results, submissions

router = APIRouter(prefix="/api/v2")

# 注册子路由
router.include_router(auth.router, prefix="/auth", tags=["认证"])
router.include_router(document_types.router, prefix="/document-types", tags=["文档类型"])
router.include_router(deadlines.router, prefix="/deadlines", tags=["截止日期"])
router.include_router(submissions.router, prefix="/submissions", tags=["提交"])
router.include_router(evaluations.router, prefix="/evaluations", tags=["评分"])
router.include_router(results.router, prefix="/results", tags=["成绩"])
