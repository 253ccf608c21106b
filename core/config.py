"""
配置管理系统

支持:
1. 环境变量读取
2. .env 文件
3. 类型验证

上游服务地址（RCSB / PDBe / UniProt）、HTTP 超时、比对轮询参数
都在这里集中定义，启动时读取一次，之后不再修改。
"""
from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RCSBSettings(BaseSettings):
    """RCSB PDB 配置（主数据源）"""
    model_config = SettingsConfigDict(
        env_prefix="RCSB_",
        extra="ignore"
    )

    base_url: str = Field(default="https://data.rcsb.org", description="Data API 根地址")
    graphql_url: str = Field(default="https://data.rcsb.org/graphql", description="GraphQL 端点")
    search_url: str = Field(
        default="https://search.rcsb.org/rcsbsearch/v2/query",
        description="Search API 端点",
    )
    files_url: str = Field(default="https://files.rcsb.org/download", description="结构文件下载地址")
    alignment_url: str = Field(
        default="https://alignment.rcsb.org/api/v1/structures",
        description="结构比对服务地址",
    )

    @property
    def health_url(self) -> str:
        """健康检查地址"""
        return f"{self.base_url}/rest/v1/status"


class PDBeSettings(BaseSettings):
    """PDBe 配置（备用数据源）"""
    model_config = SettingsConfigDict(
        env_prefix="PDBE_",
        extra="ignore"
    )

    base_url: str = Field(default="https://www.ebi.ac.uk/pdbe", description="PDBe 根地址")
    api_url: str = Field(default="https://www.ebi.ac.uk/pdbe/api", description="REST API 地址")
    search_url: str = Field(
        default="https://www.ebi.ac.uk/pdbe/search/pdb/select",
        description="Solr 检索地址",
    )
    files_url: str = Field(
        default="https://www.ebi.ac.uk/pdbe/entry-files/download",
        description="结构文件下载地址",
    )

    @property
    def health_url(self) -> str:
        """健康检查地址"""
        return f"{self.api_url}/pdb/entry/status"


class UniProtSettings(BaseSettings):
    """UniProt 配置"""
    model_config = SettingsConfigDict(
        env_prefix="UNIPROT_",
        extra="ignore"
    )

    api_url: str = Field(default="https://rest.uniprot.org", description="REST API 地址")
    search_page_size: int = Field(default=25, ge=1, le=500, description="检索每页条数")


class HTTPSettings(BaseSettings):
    """出站 HTTP 配置"""
    model_config = SettingsConfigDict(
        env_prefix="HTTP_",
        extra="ignore"
    )

    request_timeout: float = Field(default=30.0, gt=0, description="单次请求超时（秒）")
    health_timeout: float = Field(default=5.0, gt=0, description="健康检查超时（秒）")
    summary_timeout: float = Field(default=10.0, gt=0, description="条目摘要请求超时（秒）")
    operation_timeout: float = Field(default=120.0, gt=0, description="单次 API 调用的总截止时间（秒）")
    max_retries: int = Field(default=2, ge=0, le=10, description="连接失败重试次数")
    user_agent: str = Field(default="ProteinStructService/0.1.0", description="User-Agent")


class AlignmentSettings(BaseSettings):
    """结构比对配置"""
    model_config = SettingsConfigDict(
        env_prefix="ALIGNMENT_",
        extra="ignore"
    )

    poll_interval: float = Field(default=2.0, ge=0, description="轮询间隔（秒）")
    max_poll_attempts: int = Field(default=15, ge=1, le=200, description="最大轮询次数")
    max_structure_candidates: int = Field(default=10, ge=1, le=50, description="结构相似检索的最大比对数")
    max_concurrency: int = Field(default=10, ge=1, le=50, description="并发比对数上限，默认与候选上限一致")
    default_method: str = Field(default="cealign", description="默认比对算法: cealign, tmalign, fatcat")

    @field_validator("default_method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        allowed = {"cealign", "tmalign", "fatcat"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"比对算法必须是 {allowed} 之一")
        return v


class LoggingSettings(BaseSettings):
    """日志配置"""
    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore"
    )

    level: str = Field(default="INFO", description="日志级别")
    format: str = Field(default="json", description="日志格式: json, console")
    file_path: Optional[str] = Field(default=None, description="日志文件路径")
    max_size_mb: int = Field(default=100, ge=1, le=1000, description="日志文件最大大小 (MB)")
    backup_count: int = Field(default=7, ge=1, le=30, description="保留日志文件数")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"日志级别必须是 {allowed} 之一")
        return v


class Settings(BaseSettings):
    """
    主配置类

    层级:
    1. 环境变量 (最高优先级)
    2. .env 文件
    3. 默认值 (最低优先级)

    使用示例:
    >>> settings = Settings()
    >>> print(settings.rcsb.search_url)
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 应用基础配置
    app_name: str = Field(default="ProteinStructService", description="应用名称")
    app_version: str = Field(default="0.1.0", description="应用版本")
    debug: bool = Field(default=False, description="调试模式")
    environment: str = Field(default="development", description="运行环境: development, staging, production")

    # API 配置
    api_host: str = Field(default="0.0.0.0", description="API 监听地址")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API 监听端口")
    api_prefix: str = Field(default="/api/v1", description="API 路径前缀")
    cors_origins: str = Field(default="*", description="CORS 允许的源，逗号分隔")

    # 子配置
    rcsb: RCSBSettings = Field(default_factory=RCSBSettings)
    pdbe: PDBeSettings = Field(default_factory=PDBeSettings)
    uniprot: UniProtSettings = Field(default_factory=UniProtSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    alignment: AlignmentSettings = Field(default_factory=AlignmentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"环境必须是 {allowed} 之一")
        return v

    @property
    def cors_origin_list(self) -> List[str]:
        """解析 CORS 源列表"""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def display_config(self) -> dict:
        """返回配置摘要（用于日志/调试）"""
        return {
            "app_name": self.app_name,
            "app_version": self.app_version,
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "rcsb_search_url": self.rcsb.search_url,
            "pdbe_api_url": self.pdbe.api_url,
            "request_timeout": self.http.request_timeout,
            "alignment_poll_interval": self.alignment.poll_interval,
            "alignment_max_poll_attempts": self.alignment.max_poll_attempts,
        }


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例（缓存）"""
    return Settings()
