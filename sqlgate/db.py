import os, json, decimal
from typing import Any, Callable, Dict, Tuple
from urllib.parse import quote, urlencode
from pydantic import BaseModel, ConfigDict, ValidationError
import asyncpg

from .server import ConfigError


# ---- Konfiguration ----
class Config(BaseModel):
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)

    db_host: str = "localhost"
    db_port: str = "5432"
    db_user: str = ""
    db_password: str = ""
    db_name: str = ""
    db_sslmode: str = "disable"
    tcp_host: str = ""
    tcp_port: str = "8080"

    def connection_string(self, mask_password: bool = False) -> str:
        password = "***" if mask_password and self.db_password else self.db_password
        return (
            f"host={self.db_host} port={self.db_port} user={self.db_user} "
            f"password={password} dbname={self.db_name} sslmode={self.db_sslmode}"
        )

    def dsn(self) -> str:
        auth = quote(self.db_user, safe="")
        if self.db_password:
            auth += ":" + quote(self.db_password, safe="")
        netloc = f"{auth}@{self.db_host}" if auth else self.db_host
        if self.db_port:
            netloc += f":{self.db_port}"
        query = urlencode({"sslmode": self.db_sslmode}) if self.db_sslmode else ""
        dsn = f"postgresql://{netloc}/{quote(self.db_name, safe='')}"
        return f"{dsn}?{query}" if query else dsn

    def listen_address(self) -> Tuple[str, int]:
        try:
            port = int(self.tcp_port)
        except ValueError as e:
            raise ConfigError(f"Invalid tcp_port: {self.tcp_port!r}") from e
        return self.tcp_host or "0.0.0.0", port


def load_config(path: str) -> Config:
    if not os.path.isfile(path):
        raise ConfigError("Cannot find configuration file")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError("Cannot read configuration file") from e
    try:
        return Config.model_validate(json.loads(raw))
    except json.JSONDecodeError as e:
        raise ConfigError(str(e)) from e
    except ValidationError as e:
        raise ConfigError(str(e)) from e


# ---- DB (asyncpg) ----
# Request arguments are always str: these types are bound in text format and the
# server parses the string. Decoders keep the Python types.
TEXT_BOUND_TYPES: Dict[str, Callable[[str], Any]] = {
    "int2": int, "int4": int, "int8": int, "oid": int,
    "float4": float, "float8": float, "numeric": decimal.Decimal,
    "bool": lambda v: v == "t",
    "date": str, "time": str, "timetz": str, "timestamp": str, "timestamptz": str,
    "interval": str, "uuid": str, "inet": str, "cidr": str, "macaddr": str,
}


async def bind_text_params(con) -> None:
    for typename, decoder in TEXT_BOUND_TYPES.items():
        await con.set_type_codec(typename, schema="pg_catalog",
                                 encoder=str, decoder=decoder, format="text")


async def create_pool(config: Config) -> asyncpg.Pool:
    return await asyncpg.create_pool(dsn=config.dsn(), min_size=1, max_size=10,
                                     init=bind_text_params)
