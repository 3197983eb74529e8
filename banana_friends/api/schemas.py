"""
Pydantic schemas for REST API
Field names follow the JSON contract the frontend already speaks
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime


# Generation Schemas
class TaskStatusResponse(BaseModel):
    """Normalized status of a KIE.AI image or video task"""
    success: bool = True
    state: Optional[str] = Field(None, description="Provider task state (success, generating, failed, ...)")
    resultUrls: Optional[List[str]] = Field(None, description="Result URLs once the task finished")
    data: Dict[str, Any] = Field(..., description="Raw upstream response")


class KieUploadRequest(BaseModel):
    """Request schema for the KIE.AI base64 upload proxy"""
    base64Data: str = Field(..., min_length=1, description="Base64 encoded file")
    fileName: Optional[str] = Field(None, description="Target file name")
    uploadPath: str = Field("documents/upload", description="Upload folder on KIE.AI storage")


class KieUploadResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]
    downloadUrl: Optional[str] = None


# Asset Schemas
class TransferRequest(BaseModel):
    """Request schema for moving a stored image onto the FTP host"""
    supabasePath: str = Field(..., min_length=1, description="Object key inside the temp bucket")
    username: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)


class TransferResponse(BaseModel):
    success: bool = True
    publicUrl: str
    transferId: str
    message: str


class DirectUploadRequest(BaseModel):
    """Request schema for uploading a base64 image straight to the FTP host"""
    base64Image: str = Field(..., min_length=1, description="Base64 image, optionally as a data URL")
    username: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)


class DirectUploadResponse(BaseModel):
    success: bool = True
    publicUrl: str
    message: str
    fileSize: int


class UploadResponse(BaseModel):
    success: bool = True
    url: str
    message: str


class TransferRecord(BaseModel):
    """Durable intent record of a relocation"""
    id: str
    state: str
    source_bucket: str
    source_path: str
    username: str
    filename: str
    remote_path: Optional[str]
    public_url: Optional[str]
    error: Optional[str]
    cleanup_error: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    model_config = ConfigDict(from_attributes=True)


class ResumeSummaryResponse(BaseModel):
    success: bool = True
    resumed: int
    completed: int
    failed: int
    transfers: List[TransferRecord]


class CleanupResponse(BaseModel):
    success: bool = True
    message: str
    filesDeleted: Optional[int] = None
    bucketDeleted: Optional[bool] = None
    bucketError: Optional[str] = None
    error: Optional[str] = None


class ConvertRequest(BaseModel):
    base64Image: str = Field(..., min_length=1)
    quality: int = Field(80, ge=1, le=100)


class ConvertResponse(BaseModel):
    success: bool = True
    convertedImage: str = Field(..., description="Converted image as a data URL")
    format: str
    originalSize: int = Field(..., description="Size of the input in KB")
    compressedSize: int = Field(..., description="Size of the output in KB")
    compressionRatio: int = Field(..., description="Percent saved")


# Generation Queue Schemas
class ReferenceImage(BaseModel):
    base64: Optional[str] = Field(None, description="Base64 image, optionally as a data URL")
    mime_type: Optional[str] = None


class GenerationStartRequest(BaseModel):
    """Request schema for queueing a Gemini generation"""
    user_id: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    resolution: str = Field("2K", description="Gemini image size (1K, 2K, 4K)")
    aspect_ratio: str = "9:16"
    main_face_image_url: Optional[str] = Field(None, description="Face reference fetched by the worker")
    additional_images: List[ReferenceImage] = []


class GenerationStartResponse(BaseModel):
    generation_id: str
    status: str
    message: str
    created_at: Optional[datetime]


class GenerationRetryRequest(BaseModel):
    user_id: Optional[str] = None


class GenerationRetryResponse(BaseModel):
    message: str
    status: str


class GenerationResult(BaseModel):
    text: Optional[str] = None
    image: Optional[str] = None
    generation_time_seconds: Optional[float] = None


class GenerationStatusResponse(BaseModel):
    """Poll result; result is set once completed, error once failed"""
    id: str
    status: str
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[GenerationResult] = None
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class GenerationSummary(BaseModel):
    id: str
    prompt: str
    resolution: Optional[str]
    aspect_ratio: Optional[str]
    status: str
    result: Optional[GenerationResult]
    error: Optional[str]
    created_at: Optional[datetime]
    completed_at: Optional[datetime]


class UserGenerationsResponse(BaseModel):
    generations: List[GenerationSummary]
    total: int


# Community Prompt Schemas
class CommunityPromptResponse(BaseModel):
    id: int
    title: str
    prompt: str
    category: Optional[str]
    likes: int
    author: Optional[str]
    image_url: Optional[str]
    source_url: Optional[str]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    model_config = ConfigDict(from_attributes=True)


class CommunityStatsResponse(BaseModel):
    totalPrompts: int
    categories: int
    totalLikes: int
    averageLikes: int


class LikeResponse(BaseModel):
    success: bool = True
    id: int
    likes: int


# Error Schemas
class ErrorResponse(BaseModel):
    """Standard error response schema"""
    success: bool = False
    error: str = Field(..., description="Error message")
    details: Optional[Any] = Field(None, description="Detailed error information")


# Status Schemas
class HealthCheckResponse(BaseModel):
    """Health check response schema"""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Response timestamp")
    version: str = Field(..., description="API version")


class ServiceStatusResponse(BaseModel):
    """Service status response schema"""
    api_status: str = Field(..., description="API service status")
    database_status: str = Field(..., description="Database connection status")
    upstreams: Dict[str, bool] = Field(..., description="Which upstream credentials are configured")
