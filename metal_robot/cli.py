"""
命令行入口：`metal-robot --config ... --bind-addr ... --port ... --log-level ...`

每个参数都可以用 `METAL_ROBOT_<FLAG>` 环境变量覆盖（`-` 换成 `_`）。
配置解析失败、forge 初始化失败时以 1 退出；端口绑定失败由 uvicorn 非零退出。
"""

from __future__ import annotations

import logging
from typing import Optional

import typer
import uvicorn

from metal_robot.config import ConfigError
from metal_robot.config import load_config
from metal_robot.infra.log import setup_logging
from metal_robot.main import build_app
from metal_robot.main import build_clients
from metal_robot.main import build_http_client

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="Webhook bot automating releases across the metal-stack repositories.")


@app.command()
def serve(
    config: Optional[str] = typer.Option(None, "--config", envvar="METAL_ROBOT_CONFIG", help="path to the config file"),
    bind_addr: str = typer.Option("127.0.0.1", "--bind-addr", envvar="METAL_ROBOT_BIND_ADDR", help="address to listen on"),
    port: int = typer.Option(3000, "--port", envvar="METAL_ROBOT_PORT", help="port to listen on"),
    log_level: str = typer.Option("info", "--log-level", envvar="METAL_ROBOT_LOG_LEVEL", help="debug, info, warning or error"),
) -> None:
    try:
        setup_logging(log_level)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    try:
        app_config = load_config(config)
    except ConfigError as exc:
        logger.error(f"unable to load config: {exc}")
        raise typer.Exit(code=1) from exc

    http_client = build_http_client()
    try:
        clients = build_clients(app_config, http_client)
        web_app = build_app(app_config, clients, http_client=http_client)
    except Exception as exc:
        logger.error(f"unable to initialize metal-robot: {exc}")
        raise typer.Exit(code=1) from exc

    logger.info(f"starting metal-robot on {bind_addr}:{port}")
    uvicorn.run(web_app, host=bind_addr, port=port, log_level=log_level.lower())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
