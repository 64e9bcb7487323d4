"""Wire shapes for the B2 v3 JSON API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

V3_API = "/b2api/v3/"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ErrorMessage(_WireModel):
    status: int = 0
    code: str = ""
    message: str = ""


class StorageAPIInfo(_WireModel):
    absolute_minimum_part_size: int = Field(default=0, alias="absoluteMinimumPartSize")
    recommended_part_size: int = Field(default=0, alias="recommendedPartSize")
    api_url: str = Field(alias="apiUrl")
    download_url: str = Field(alias="downloadUrl")
    s3_api_url: str = Field(default="", alias="s3ApiUrl")
    bucket_id: str | None = Field(default=None, alias="bucketId")
    bucket_name: str | None = Field(default=None, alias="bucketName")
    name_prefix: str | None = Field(default=None, alias="namePrefix")
    capabilities: list[str] = Field(default_factory=list)


class APIInfo(_WireModel):
    storage_api: StorageAPIInfo = Field(alias="storageApi")


class AuthorizeAccountResponse(_WireModel):
    account_id: str = Field(alias="accountId")
    authorization_token: str = Field(alias="authorizationToken")
    api_info: APIInfo = Field(alias="apiInfo")


class ListBucketsRequest(_WireModel):
    account_id: str = Field(alias="accountId")
    bucket_id: str | None = Field(default=None, alias="bucketId")
    bucket_name: str | None = Field(default=None, alias="bucketName")
    bucket_types: list[str] | None = Field(default=None, alias="bucketTypes")


class BucketResponse(_WireModel):
    bucket_id: str = Field(alias="bucketId")
    bucket_name: str = Field(alias="bucketName")
    bucket_type: str = Field(default="", alias="bucketType")
    bucket_info: dict[str, str] = Field(default_factory=dict, alias="bucketInfo")
    revision: int = 0


class ListBucketsResponse(_WireModel):
    buckets: list[BucketResponse] = Field(default_factory=list)


class UploadURLResponse(_WireModel):
    """Shared by b2_get_upload_url and b2_get_upload_part_url."""

    upload_url: str = Field(alias="uploadUrl")
    authorization_token: str = Field(alias="authorizationToken")


class FileResponse(_WireModel):
    """File metadata as returned by upload, info and listing calls."""

    file_id: str = Field(default="", alias="fileId")
    file_name: str = Field(default="", alias="fileName")
    content_length: int = Field(default=0, alias="contentLength")
    content_sha1: str = Field(default="", alias="contentSha1")
    content_md5: str = Field(default="", alias="contentMd5")
    content_type: str = Field(default="", alias="contentType")
    file_info: dict[str, str] = Field(default_factory=dict, alias="fileInfo")
    action: str = ""
    upload_timestamp: int = Field(default=0, alias="uploadTimestamp")


class StartLargeFileRequest(_WireModel):
    bucket_id: str = Field(alias="bucketId")
    file_name: str = Field(alias="fileName")
    content_type: str = Field(alias="contentType")
    file_info: dict[str, str] | None = Field(default=None, alias="fileInfo")


class ListPartsRequest(_WireModel):
    file_id: str = Field(alias="fileId")
    start_part_number: int | None = Field(default=None, alias="startPartNumber")
    max_part_count: int | None = Field(default=None, alias="maxPartCount")


class PartResponse(_WireModel):
    file_id: str = Field(default="", alias="fileId")
    part_number: int = Field(alias="partNumber")
    content_sha1: str = Field(default="", alias="contentSha1")
    content_length: int = Field(default=0, alias="contentLength")


class ListPartsResponse(_WireModel):
    next_part_number: int | None = Field(default=None, alias="nextPartNumber")
    parts: list[PartResponse] = Field(default_factory=list)


class FinishLargeFileRequest(_WireModel):
    file_id: str = Field(alias="fileId")
    part_sha1_array: list[str] = Field(alias="partSha1Array")


class ListUnfinishedLargeFilesRequest(_WireModel):
    bucket_id: str = Field(alias="bucketId")
    start_file_id: str | None = Field(default=None, alias="startFileId")
    max_file_count: int | None = Field(default=None, alias="maxFileCount")


class ListUnfinishedLargeFilesResponse(_WireModel):
    files: list[FileResponse] = Field(default_factory=list)
    next_file_id: str | None = Field(default=None, alias="nextFileId")


class ListFileNamesRequest(_WireModel):
    bucket_id: str = Field(alias="bucketId")
    max_file_count: int | None = Field(default=None, alias="maxFileCount")
    start_file_name: str | None = Field(default=None, alias="startFileName")
    prefix: str | None = None
    delimiter: str | None = None


class ListFileNamesResponse(_WireModel):
    files: list[FileResponse] = Field(default_factory=list)
    next_file_name: str | None = Field(default=None, alias="nextFileName")


class ListFileVersionsRequest(_WireModel):
    bucket_id: str = Field(alias="bucketId")
    max_file_count: int | None = Field(default=None, alias="maxFileCount")
    start_file_name: str | None = Field(default=None, alias="startFileName")
    start_file_id: str | None = Field(default=None, alias="startFileId")
    prefix: str | None = None
    delimiter: str | None = None


class ListFileVersionsResponse(_WireModel):
    files: list[FileResponse] = Field(default_factory=list)
    next_file_name: str | None = Field(default=None, alias="nextFileName")
    next_file_id: str | None = Field(default=None, alias="nextFileId")


class HideFileRequest(_WireModel):
    bucket_id: str = Field(alias="bucketId")
    file_name: str = Field(alias="fileName")


class GetDownloadAuthorizationRequest(_WireModel):
    bucket_id: str = Field(alias="bucketId")
    file_name_prefix: str = Field(alias="fileNamePrefix")
    valid_duration_in_seconds: int = Field(alias="validDurationInSeconds")
    b2_content_disposition: str | None = Field(default=None, alias="b2ContentDisposition")


class GetDownloadAuthorizationResponse(_WireModel):
    bucket_id: str = Field(default="", alias="bucketId")
    file_name_prefix: str = Field(default="", alias="fileNamePrefix")
    authorization_token: str = Field(alias="authorizationToken")
