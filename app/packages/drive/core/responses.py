"""响应封装：构建系统统一的返回结构。"""

from typing import Any, Optional

from app.packages.drive.core.constants import HTTP_STATUS_OK


def create_response(
    msg: str,
    data: Any = None,
    code: int = HTTP_STATUS_OK,
    *,
    warning: Optional[str] = None,
) -> dict[str, Any]:
    """按照 ``msg``、``data``、``code`` 组合出统一响应体。

    ``warning`` 用于“成功但元数据与文件系统可能不一致”的场景，
    会写入 ``data.warning``，调用方据此提示用户。
    """
    if warning is not None:
        data = {**(data or {}), "warning": warning}
    return {"msg": msg, "data": data, "code": code}
