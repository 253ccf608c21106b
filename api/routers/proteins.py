"""
蛋白质结构 API 路由

服务异常由 api.middleware.error_handler 统一转换为 HTTP 响应，
路由函数只做请求模型到领域对象的转换。
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
import structlog

from api.dependencies import get_protein_service, get_request_context
from api.schemas.protein import (
    AnalyzeRequest,
    CompareRequest,
    LigandTrackRequest,
    SearchRequest,
    SimilarRequest,
)
from api.schemas.response import APIResponse, success_response
from core.context import RequestContext
from core.models import StructureFormat
from core.services.protein_service import ProteinService

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/structures/search", response_model=APIResponse[Dict[str, Any]])
async def search_structures(
    request: SearchRequest,
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """
    检索结构

    自由文本匹配 PDB ID、标题和分子名称；不带任何条件时返回全部蛋白质结构。
    """
    result = await service.search_structures(request.to_domain(), context)
    return success_response(data=result.to_dict(), message=f"Found {result.total_count} structures")


@router.get("/structures/{pdb_id}", response_model=APIResponse[Dict[str, Any]])
async def get_structure(
    pdb_id: str = Path(..., description="4 位 PDB ID，大小写不敏感"),
    format: StructureFormat = Query(StructureFormat.MMCIF, description="坐标文件格式"),
    include_coordinates: bool = Query(False, description="是否返回坐标文件内容"),
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """获取结构详情（元数据、链、可选坐标）"""
    record = await service.get_structure(
        pdb_id,
        context,
        format=format,
        include_coordinates=include_coordinates,
    )
    return success_response(data=record.to_dict())


@router.post("/structures/compare", response_model=APIResponse[Dict[str, Any]])
async def compare_structures(
    request: CompareRequest,
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """两两结构比对"""
    result = await service.compare_structures(request.to_domain(), context)
    return success_response(data=result.to_dict())


@router.post("/structures/similar", response_model=APIResponse[Dict[str, Any]])
async def find_similar(
    request: SimilarRequest,
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """按序列或结构检索相似结构"""
    result = await service.find_similar(request.to_domain(), context)
    return success_response(data=result.to_dict(), message=f"Found {result.total_count} similar structures")


@router.post("/ligands/track", response_model=APIResponse[Dict[str, Any]])
async def track_ligands(
    request: LigandTrackRequest,
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """查找包含指定配体的结构"""
    result = await service.track_ligands(
        request.to_domain(),
        context,
        filters=request.domain_filters(),
        include_binding_sites=request.include_binding_sites,
        limit=request.limit,
    )
    return success_response(data=result.to_dict())


@router.post("/collection/analyze", response_model=APIResponse[Dict[str, Any]])
async def analyze_collection(
    request: AnalyzeRequest,
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """结构集合分布统计"""
    result = await service.analyze_collection(request.to_domain(), context)
    return success_response(data=result.to_dict())


@router.get("/sequences/search", response_model=APIResponse[Dict[str, Any]])
async def search_sequences(
    query: str = Query(..., min_length=1, description="基因名 / 蛋白名 / UniProt 查询语法"),
    size: Optional[int] = Query(None, ge=1, le=500, description="返回条数"),
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """UniProt 序列检索"""
    entries = await service.search_sequences(query, context, size=size)
    return success_response(data={"results": [e.to_dict() for e in entries], "count": len(entries)})


@router.get("/sequences/{accession}", response_model=APIResponse[Dict[str, Any]])
async def get_protein_sequence(
    accession: str = Path(..., description="UniProt 登录号"),
    service: ProteinService = Depends(get_protein_service),
    context: RequestContext = Depends(get_request_context),
):
    """按 UniProt 登录号获取序列"""
    sequence = await service.get_protein_sequence(accession, context)
    return success_response(data={
        "accession": accession.strip().upper(),
        "sequence": sequence,
        "length": len(sequence),
    })
