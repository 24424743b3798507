"""全局常量：HTTP 状态码、角色名称与文件服务的固定参数。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_CREATED = 201
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_UNPROCESSABLE_ENTITY = 422
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

ACCESS_TOKEN_TYPE = "bearer"

ADMIN_ROLE = "admin"
# 运维接口（缓存状态/清理）仅对管理员开放
OPERATOR_ROLES = frozenset({ADMIN_ROLE})

DEFAULT_MIME_TYPE = "application/octet-stream"

# 少于该长度的搜索词不发起查询，直接返回空结果
SEARCH_MIN_LENGTH = 2

FOLDER_PATH_SEPARATOR = "/"

# 客户端可见的错误文案，保持稳定以便前端按 ``error`` 字段匹配
MSG_AUTH_REQUIRED = "Authentication required"
MSG_PERMISSION_DENIED = "Permission denied"
MSG_FILE_NOT_FOUND = "File not found"
MSG_FOLDER_NOT_FOUND = "Folder not found"
MSG_INTERNAL_ERROR = "Internal server error"
MSG_REORDER_MISMATCH = "File set does not match current scope"
MSG_UPLOAD_FAILED = "Upload failed"
MSG_FOLDER_CYCLE = "Folder cannot be moved into itself or its descendants"
MSG_VALIDATION_FAILED = "Request validation failed"
MSG_INVALID_FOLDER = "Invalid folder"
