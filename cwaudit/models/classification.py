"""エンティティ分類の結果を表す列挙型。"""

from enum import Enum
from typing import Dict


class EntryKind(Enum):
    """コントラクトのエントリーポイント種別。"""
    INSTANTIATE = "instantiate"
    EXECUTE = "execute"
    QUERY = "query"
    MIGRATE = "migrate"
    REPLY = "reply"
    IBC_OPEN = "ibc_channel_open"
    IBC_CONNECT = "ibc_channel_connect"
    IBC_CLOSE = "ibc_channel_close"
    IBC_RECEIVE = "ibc_packet_receive"
    IBC_ACK = "ibc_packet_ack"
    IBC_TIMEOUT = "ibc_packet_timeout"

    @property
    def is_ibc(self) -> bool:
        return self.value.startswith("ibc_")


# 予約済みエントリーポイント名 -> 種別
ENTRY_POINT_NAMES: Dict[str, EntryKind] = {kind.value: kind for kind in EntryKind}


class StorageOpKind(Enum):
    """永続ストレージに対する操作の種別。"""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


# メソッド名 -> ストレージ操作種別（識別子の完全一致で判定する）
STORAGE_METHODS: Dict[str, StorageOpKind] = {
    "save": StorageOpKind.WRITE,
    "update": StorageOpKind.WRITE,
    "load": StorageOpKind.READ,
    "may_load": StorageOpKind.READ,
    "remove": StorageOpKind.DELETE,
}
