"""常量定义：集中维护 HTTP 状态码与节点相关的固定取值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

# 闭包表中“自身到自身”的边深度
SELF_EDGE_DEPTH = 0
# 直接父子关系的边深度
CHILD_EDGE_DEPTH = 1

PATH_SEPARATOR = "/"

LIST_FORMAT_TREE = "tree"
LIST_FORMAT_SIMPLE = "simple"
LIST_FORMAT_FLAT = "flat"

# 单个路径段（文件名或目录名）的最大长度，与 fs_nodes.name 列宽一致
MAX_NAME_LENGTH = 255
