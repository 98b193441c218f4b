"""附件本地预览引用的分配与释放。

预览引用形如 ``preview://<id>``，渲染层通过 resolve 取回图片字节。
附件被移除时必须 release；附件随消息发送时引用移交给消息，继续有效。
"""

import base64
from dataclasses import dataclass
from typing import Dict, Optional
from uuid import uuid4


PREVIEW_SCHEME = "preview://"


@dataclass
class PreviewEntry:
    data: bytes
    media_type: str

    def as_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


class PreviewStore:
    def __init__(self):
        self._entries: Dict[str, PreviewEntry] = {}

    def allocate(self, data: bytes, media_type: str) -> str:
        uri = f"{PREVIEW_SCHEME}{uuid4().hex}"
        self._entries[uri] = PreviewEntry(data=data, media_type=media_type)
        return uri

    def resolve(self, uri: str) -> Optional[PreviewEntry]:
        return self._entries.get(uri)

    def release(self, uri: Optional[str]) -> bool:
        """释放引用；返回是否真的释放了一个存在的引用。"""

        if not uri:
            return False
        return self._entries.pop(uri, None) is not None

    def __contains__(self, uri: object) -> bool:
        return uri in self._entries

    def __len__(self) -> int:
        return len(self._entries)
