"""JSON-RPC 2.0 帧与 MCP 服务端消息类型

只覆盖本服务用到的部分：initialize / ping / tools/list / tools/call。
字段名沿用 MCP 线上格式 (camelCase)。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# 服务端保留区间 (-32000 ~ -32099)
SESSION_NOT_INITIALIZED = -32002

RequestId = Union[str, int]


# ---------------------------------------------------------------------------
# 帧
# ---------------------------------------------------------------------------


class _Frame(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Optional[Dict[str, Any]] = None


class JSONRPCRequest(_Frame):
    """带 id 的请求，必须应答"""

    id: RequestId


class JSONRPCNotification(_Frame):
    """不带 id 的通知，从不应答"""


class JSONRPCError(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCResponse(BaseModel):
    """应答帧，result 与 error 二选一"""

    jsonrpc: Literal["2.0"] = "2.0"
    id: Optional[RequestId] = None
    result: Optional[Any] = None
    error: Optional[JSONRPCError] = None

    @classmethod
    def success(cls, request_id: RequestId, result: BaseModel | Dict[str, Any]) -> "JSONRPCResponse":
        if isinstance(result, BaseModel):
            result = result.model_dump(exclude_none=True)
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls,
        request_id: Optional[RequestId],
        code: int,
        message: str,
        data: Any = None,
    ) -> "JSONRPCResponse":
        return cls(id=request_id, error=JSONRPCError(code=code, message=message, data=data))

    def to_json(self) -> str:
        """序列化为单行 JSON

        成功响应必须带 result，错误响应必须带 error，id 在解析失败时为 null。
        """
        payload: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result if self.result is not None else {}
        return json.dumps(payload, ensure_ascii=False)


JSONRPCMessage = Union[JSONRPCRequest, JSONRPCNotification]


class ProtocolError(Exception):
    """无法解析为 JSON-RPC 消息的帧"""

    def __init__(self, code: int, message: str, request_id: Optional[RequestId] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.request_id = request_id

    def to_response(self) -> JSONRPCResponse:
        return JSONRPCResponse.failure(self.request_id, self.code, self.message)


def parse_message(raw: Union[str, bytes, Dict[str, Any]]) -> JSONRPCMessage:
    """解析一帧入站消息

    Raises:
        ProtocolError: JSON 无效或不是合法的请求/通知
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(PARSE_ERROR, f"Parse error: {e}")
    else:
        data = raw

    if not isinstance(data, dict):
        raise ProtocolError(INVALID_REQUEST, "Invalid Request: expected a JSON object")

    # 尽量带回请求 id，便于客户端匹配错误
    request_id = data.get("id")
    if not isinstance(request_id, (str, int)) or isinstance(request_id, bool):
        request_id = None

    model = JSONRPCRequest if "id" in data else JSONRPCNotification
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(INVALID_REQUEST, f"Invalid Request: {e.errors()[0]['msg']}", request_id)


# ---------------------------------------------------------------------------
# 握手
# ---------------------------------------------------------------------------

LATEST_PROTOCOL_VERSION = "2025-03-26"
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", LATEST_PROTOCOL_VERSION)


def negotiate_protocol_version(requested: Optional[str]) -> str:
    """客户端请求的版本受支持则沿用，否则返回最新版本"""
    if requested in SUPPORTED_PROTOCOL_VERSIONS:
        return requested
    return LATEST_PROTOCOL_VERSION


class Implementation(BaseModel):
    """clientInfo / serverInfo"""

    name: str
    version: str


class ToolsCapability(BaseModel):
    # 工具集固定，不会发 list_changed 通知
    listChanged: bool = False


class ServerCapabilities(BaseModel):
    tools: ToolsCapability = Field(default_factory=ToolsCapability)


class InitializeResult(BaseModel):
    protocolVersion: str
    capabilities: ServerCapabilities
    serverInfo: Implementation
    instructions: Optional[str] = None


# ---------------------------------------------------------------------------
# 工具
# ---------------------------------------------------------------------------


def _empty_object_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


class MCPTool(BaseModel):
    """tools/list 中的一项 (不可变)"""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    inputSchema: Dict[str, Any] = Field(default_factory=_empty_object_schema)


class ListToolsResult(BaseModel):
    tools: List[MCPTool]


class MCPToolCall(BaseModel):
    """tools/call 的 params"""

    name: str
    # 非对象参数交给注册表报告为工具错误
    arguments: Optional[Any] = None


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class MCPToolResult(BaseModel):
    """tools/call 的结果，工具失败时 isError 为 true"""

    content: List[TextContent] = Field(default_factory=list)
    isError: bool = False

    @classmethod
    def text(cls, text: str) -> "MCPToolResult":
        return cls(content=[TextContent(text=text)])

    @classmethod
    def error(cls, message: str) -> "MCPToolResult":
        return cls(content=[TextContent(text=message)], isError=True)
