"""
CLI 模块

命令行接口实现：scan、update、update-all、install。
结果输出到 stdout，日志输出到 stderr。
"""

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import click
from loguru import logger

from modsync import __version__
from modsync.config import ModSyncConfig, load_config
from modsync.exceptions import ModSyncError
from modsync.logger import setup_logger
from modsync.models.instance import Instance
from modsync.models.result import ScanReport, SyncResult
from modsync.orchestrator import ModSyncOrchestrator


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def print_instances_compact(instances: List[Instance]) -> None:
    for instance in instances:
        loader = instance.mod_loader.value
        if instance.mod_loader_version:
            loader = f"{loader} {instance.mod_loader_version}"
        automodpack = " [automodpack]" if instance.has_automodpack else ""
        click.echo(
            f"{instance.launcher_kind.value:<22} {instance.name:<30} "
            f"{instance.minecraft_version:<10} {loader:<20} "
            f"{len(instance.mods):>4} mods{automodpack}"
        )


def print_instances_pretty(instances: List[Instance]) -> None:
    if not instances:
        click.echo("未找到任何实例")
        return
    for instance in instances:
        click.secho(f"{instance.name}", bold=True)
        click.echo(f"  启动器:     {instance.launcher_kind.value}")
        click.echo(f"  路径:       {instance.instance_path}")
        click.echo(f"  Minecraft:  {instance.minecraft_version}")
        loader = instance.mod_loader.value
        if instance.mod_loader_version:
            loader += f" {instance.mod_loader_version}"
        click.echo(f"  加载器:     {loader}")
        click.echo(f"  模组数量:   {len(instance.mods)}")
        if instance.server_profile:
            profile = instance.server_profile
            click.echo(f"  服务器:     {profile.server_ip}:{profile.server_port}")
        click.echo()


def print_result_pretty(result: SyncResult) -> None:
    color = "green" if result.success else "yellow"
    click.secho(f"{result.instance_name}: {result.message}", fg=color, bold=True)
    for label, items in (
        ("更新", result.updated_mods),
        ("新增", result.new_mods),
        ("删除", result.removed_mods),
        ("失败", result.failed_mods),
        ("待处理", result.ambiguous_mods),
    ):
        for item in items:
            click.echo(f"  [{label}] {item}")
    click.echo(f"  保留 {result.preserved_count} 个模组")
    for warning in result.warnings:
        click.secho(f"  警告: {warning}", fg="yellow")
    for error in result.errors:
        click.secho(f"  错误: {error}", fg="red")


def _print_warnings(report: ScanReport) -> None:
    for warning in report.warnings:
        logger.warning(f"[扫描] {warning}")


async def _run(config: ModSyncConfig, action):
    async with ModSyncOrchestrator(config) as orchestrator:
        return await action(orchestrator)


def _execute(ctx: click.Context, action):
    try:
        return asyncio.run(_run(ctx.obj["config"], action))
    except ModSyncError as e:
        logger.error(f"[错误] {e}")
        raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="配置文件路径（toml/json/yaml），默认读取 MODSYNC_CONFIG",
)
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], debug: bool):
    """ModSync - Minecraft 实例发现与模组同步工具"""
    level = "DEBUG" if debug else None
    setup_logger(level=level)
    try:
        config = load_config(config_path)
    except ModSyncError as e:
        raise click.ClickException(str(e)) from e
    if config.log_file:
        setup_logger(level=level, log_file=config.log_file)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["json", "pretty", "compact"]),
    default="compact",
    show_default=True,
    help="输出格式",
)
@click.option("-l", "--launcher", help="只扫描指定启动器（prism、modrinth、astralrinth...）")
@click.pass_context
def scan(ctx: click.Context, output_format: str, launcher: Optional[str]):
    """扫描所有启动器中的实例"""
    report: ScanReport = _execute(ctx, lambda o: o.scan(launcher))
    _print_warnings(report)

    if output_format == "json":
        _echo_json(report.to_list())
    elif output_format == "pretty":
        print_instances_pretty(report.instances)
    else:
        print_instances_compact(report.instances)


@main.command()
@click.option(
    "-i",
    "--instance-path",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="实例目录",
)
@click.option("-t", "--modpack-type", required=True, help="整合包类型（neoforge、fabric...）")
@click.option("-v", "--version", "version", default=None, help="整合包版本，默认 latest")
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["json", "pretty"]),
    default="pretty",
    show_default=True,
    help="输出格式",
)
@click.pass_context
def update(
    ctx: click.Context,
    instance_path: Path,
    modpack_type: str,
    version: Optional[str],
    output_format: str,
):
    """更新单个实例"""
    result: SyncResult = _execute(
        ctx, lambda o: o.update_instance(instance_path, modpack_type, version)
    )
    if output_format == "json":
        _echo_json(result.to_dict())
    else:
        print_result_pretty(result)
    if not result.success:
        ctx.exit(1)


@main.command("update-all")
@click.option("-t", "--modpack-type", required=True, help="整合包类型（neoforge、fabric...）")
@click.option("-v", "--version", "version", default=None, help="整合包版本，默认 latest")
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["json", "pretty"]),
    default="pretty",
    show_default=True,
    help="输出格式",
)
@click.pass_context
def update_all(
    ctx: click.Context, modpack_type: str, version: Optional[str], output_format: str
):
    """更新所有加载器匹配的实例"""
    results: List[SyncResult] = _execute(
        ctx, lambda o: o.update_all(modpack_type, version)
    )
    if output_format == "json":
        _echo_json([result.to_dict() for result in results])
    else:
        if not results:
            click.echo("没有与该整合包类型匹配的实例")
        for result in results:
            print_result_pretty(result)
            click.echo()
    if any(not result.success for result in results):
        ctx.exit(1)


@main.command()
@click.option("-t", "--modpack-type", required=True, help="整合包类型（neoforge、fabric...）")
@click.option("-n", "--name", required=True, help="新实例名称")
@click.option("-l", "--launcher", default=None, help="目标启动器，默认按优先级选择")
@click.option("-v", "--version", "version", default=None, help="整合包版本，默认 latest")
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(["json", "pretty"]),
    default="pretty",
    show_default=True,
    help="输出格式",
)
@click.pass_context
def install(
    ctx: click.Context,
    modpack_type: str,
    name: str,
    launcher: Optional[str],
    version: Optional[str],
    output_format: str,
):
    """在启动器中新建实例并安装整合包"""
    result: SyncResult = _execute(
        ctx, lambda o: o.install_instance(modpack_type, name, version, launcher)
    )
    if output_format == "json":
        _echo_json(result.to_dict())
    else:
        print_result_pretty(result)
    if not result.success:
        ctx.exit(1)


if __name__ == "__main__":
    main()
