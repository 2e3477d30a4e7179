"""CLI 入口模組"""

import time
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    MofNCompleteColumn,
    TaskProgressColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.tree import Tree

from nwbatch.core import (
    BatchConfig,
    FileGroup,
    FolderScanner,
    GroupStatus,
    RunnerNotFoundError,
    TaskRunner,
    find_task_runner,
    list_installations,
    load_config,
    parse_extensions,
    run_pipeline,
    save_config,
    validate_nwd_version,
    validate_paths,
)
from nwbatch.core.config import get_default_config
from nwbatch.core.orchestrator import BatchOrchestrator, BatchReport, GroupResult, master_needs_assembly
from nwbatch.core.logging_config import setup_logging, get_logger
from nwbatch.core.paths import get_log_dir

app = typer.Typer(
    name="nwbatch",
    help="Navisworks 批次轉檔工具 - 以 FileToolsTaskRunner 將 CAD 檔轉為 NWD 並組合總模型",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


console = Console(
    legacy_windows=False,
)
logger = get_logger(__name__)


ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config", "-c",
        help="設定檔路徑（JSON），未指定時使用預設位置",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]
RootArgument = Annotated[
    Optional[Path],
    typer.Argument(
        help="根目錄：包含各分組資料夾的專案目錄（可由設定檔 root_dir 提供）",
        resolve_path=True,
        show_default=False,
    ),
]
OutputOption = Annotated[
    Optional[Path],
    typer.Option(
        "--output", "-o",
        help="NWD 輸出目錄，未指定時輸出到各分組資料夾",
        resolve_path=True,
    ),
]
ExtOption = Annotated[
    Optional[str],
    typer.Option(
        "--ext", "-e",
        help="來源副檔名：如 rvt,dwg,nwc，或 all",
        metavar="EXTS",
    ),
]
GroupOption = Annotated[
    Optional[str],
    typer.Option(
        "--group",
        help="分組方式：folder（每個資料夾一組）或 top（每個第一層子資料夾一組）",
    ),
]
RunnerOption = Annotated[
    Optional[Path],
    typer.Option(
        "--runner",
        help="FileToolsTaskRunner.exe 路徑或其所在目錄",
    ),
]
VersionOption = Annotated[
    Optional[str],
    typer.Option(
        "--nwd-version",
        help="輸出 NWD 版本（年份），如 2024",
    ),
]
MasterOption = Annotated[
    Optional[str],
    typer.Option(
        "--master", "-m",
        help="總模型檔名（不含副檔名）",
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option(
        "--verbose", "-v",
        help="顯示詳細日誌",
    ),
]


def _resolve_config(
    config_path: Optional[Path],
    root_dir: Optional[Path] = None,
    output_dir: Optional[Path] = None,
    extensions: Optional[str] = None,
    group_mode: Optional[str] = None,
    runner: Optional[Path] = None,
    nwd_version: Optional[str] = None,
    master: Optional[str] = None,
) -> BatchConfig:
    """載入設定檔並套用命令列覆寫值，錯誤時結束程式"""
    config = load_config(config_path)
    overrides: dict = {}

    try:
        if root_dir is not None:
            overrides["root_dir"] = str(root_dir)
        if output_dir is not None:
            overrides["output_dir"] = str(output_dir)
        if extensions is not None:
            overrides["extensions"] = parse_extensions(extensions, allow_all=True)
        if group_mode is not None:
            overrides["group_mode"] = group_mode
        if runner is not None:
            overrides["runner_path"] = str(runner)
        if nwd_version is not None:
            overrides["nwd_version"] = validate_nwd_version(nwd_version)
        if master is not None:
            if not master.strip():
                raise ValueError("總模型檔名不可為空")
            overrides["master_name"] = master.strip()
    except ValueError as e:
        console.print(f"[red]錯誤：{e}[/red]")
        logger.error(f"參數解析失敗：{e}")
        raise typer.Exit(1)

    config = replace(config, **overrides)

    valid, error = validate_paths(config.root_dir, config.output_dir or None)
    if not valid:
        console.print(f"[red]錯誤：{error}[/red]")
        raise typer.Exit(1)

    return config


def _make_scanner(config: BatchConfig) -> FolderScanner:
    try:
        return FolderScanner(
            root_dir=config.root_dir,
            extensions=config.extensions,
            include=config.include_folders,
            exclude=config.exclude_folders,
            group_mode=config.group_mode,
            recursive=config.recursive,
            output_dir=config.output_dir or None,
            master_name=config.master_name,
        )
    except ValueError as e:
        console.print(f"[red]錯誤：{e}[/red]")
        raise typer.Exit(1)


def _make_runner(config: BatchConfig) -> TaskRunner:
    try:
        executable = find_task_runner(config.runner_path or None, config.nwd_version)
    except RunnerNotFoundError as e:
        console.print(f"[red]錯誤：{e}[/red]")
        logger.error(str(e))
        raise typer.Exit(1)

    logger.debug(f"轉檔程式：{executable}")
    return TaskRunner(executable, timeout=config.timeout, version=config.nwd_version)


def _staging_parent(config: BatchConfig) -> Path:
    return Path(config.output_dir or config.root_dir)


def _print_header(config: BatchConfig) -> None:
    console.print(f"[bold blue]根目錄：[/bold blue]{config.root_dir}")
    if config.output_dir:
        console.print(f"[bold blue]輸出目錄：[/bold blue]{config.output_dir}")
    console.print(f"[bold blue]來源格式：[/bold blue]{', '.join(config.extensions)}")


def _build_groups_tree(groups: list[FileGroup], root_path: Path, title: str, show_files: bool = False) -> Tree:
    """建立分組樹狀結構"""
    tree = Tree(f"[bold blue]{title}[/bold blue] (於 {root_path.name})")

    for group in groups:
        needs_convert = group.needs_conversion()
        status_tag = "[red]需轉檔[/red]" if needs_convert else "[green]已是最新[/green]"
        label = (
            f"📁 [bold]{group.relative_folder}[/bold] "
            f"[cyan]({len(group.files)} 個檔案 → {group.output_path.name})[/cyan] {status_tag}"
        )
        node = tree.add(label)
        if show_files:
            for filepath in group.files:
                try:
                    node.add(str(filepath.relative_to(group.folder)))
                except ValueError:
                    node.add(filepath.name)

    return tree


_STATUS_TEXT = {
    GroupStatus.SUCCESS: "[green]成功[/green]",
    GroupStatus.SKIPPED: "[yellow]略過[/yellow]",
    GroupStatus.FAILED: "[red]失敗[/red]",
    GroupStatus.LOCKED: "[magenta]被鎖定另存[/magenta]",
}


def _print_results(results: list[GroupResult], master: GroupResult | None) -> None:
    table = Table(title="轉檔結果")
    table.add_column("分組", style="cyan")
    table.add_column("狀態")
    table.add_column("輸出 / 訊息")

    rows = list(results)
    if master is not None:
        rows.append(master)

    for result in rows:
        detail = str(result.output_path) if result.status == GroupStatus.SUCCESS else result.message
        name = result.name if result is not master else f"[bold]{result.name}[/bold]（總模型）"
        table.add_row(name, _STATUS_TEXT.get(result.status, result.status.value), detail)

    console.print(table)


def _finish(report: BatchReport, elapsed_time: float) -> None:
    stats = report.stats

    console.print()
    _print_results(report.results, report.master)
    console.print("[bold]轉檔完成！[/bold]")
    console.print(f"[green]成功：{stats.success}[/green]")
    console.print(f"[yellow]略過：{stats.skipped}[/yellow]")
    if stats.locked > 0:
        console.print(f"[magenta]被鎖定另存：{stats.locked}[/magenta]")
    if stats.failed > 0:
        console.print(f"[red]失敗：{stats.failed}[/red]")
    console.print(f"[blue]總耗時：{elapsed_time:.1f} 秒[/blue]")

    if report.has_failures:
        raise typer.Exit(1)


@app.command()
def convert(
    root_dir: RootArgument = None,
    config_path: ConfigOption = None,
    output_dir: OutputOption = None,
    extensions: ExtOption = None,
    group_mode: GroupOption = None,
    runner: RunnerOption = None,
    nwd_version: VersionOption = None,
    master: MasterOption = None,
    no_assemble: Annotated[
        bool,
        typer.Option(
            "--no-assemble",
            help="只轉換分組，不組合總模型",
        ),
    ] = False,
    force: Annotated[
        bool,
        typer.Option(
            "--force", "-F",
            help="強制重新轉檔，忽略已是最新的輸出",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run", "-n",
            help="預覽模式，只顯示將要轉檔的分組",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes", "-y",
            help="不詢問直接開始（適合排程執行）",
        ),
    ] = False,
    keep: Annotated[
        bool,
        typer.Option(
            "--keep",
            help="保留暫存目錄（檔案清單與轉檔日誌）",
        ),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    批次轉換 CAD 檔並組合總模型

    依資料夾分組來源檔，每組呼叫一次 FileToolsTaskRunner 產生 NWD，
    最後將所有子模型組合為總模型。

    範例：
    - 標準轉檔： nwbatch convert D:\\Project
    - 指定格式： nwbatch convert D:\\Project -e rvt,dwg
    - 排程執行： nwbatch convert -c D:\\nwbatch.json --yes
    """
    setup_logging(verbose=verbose, log_dir=get_log_dir(), console=console)

    config = _resolve_config(
        config_path, root_dir, output_dir, extensions, group_mode, runner, nwd_version, master,
    )
    if keep:
        config.keep_manifests = True
    skip_up_to_date = config.skip_up_to_date and not force

    logger.info(f"開始批次轉檔：{config.root_dir}")
    _print_header(config)

    scanner = _make_scanner(config)
    with console.status("[bold green]掃描檔案中..."):
        pending, up_to_date = scanner.scan_pending()

    console.print()
    console.print(f"[green]需要轉檔：[/green]{len(pending)} 個分組")
    console.print(f"[yellow]已是最新：[/yellow]{len(up_to_date)} 個分組")

    groups = sorted(pending + up_to_date, key=lambda g: g.folder)
    if not groups:
        console.print("[bold yellow]找不到符合條件的來源檔案[/bold yellow]")
        return

    if dry_run:
        targets = groups if not skip_up_to_date else pending
        console.print(_build_groups_tree(targets, Path(config.root_dir), "將要轉檔的分組", show_files=True))
        if not no_assemble:
            console.print(f"[bold blue]總模型：[/bold blue]{scanner.master_path}")
        return

    if not pending and skip_up_to_date and (no_assemble or not master_needs_assembly(
        scanner.master_path, [g.output_path for g in groups]
    )):
        console.print("[bold green]所有模型皆已是最新！[/bold green]")
        return

    task_runner = _make_runner(config)

    count = len(groups) if not skip_up_to_date else len(pending)
    if not yes and not typer.confirm(f"是否開始轉檔 {count} 個分組？"):
        console.print("[yellow]已取消[/yellow]")
        return

    start_time = time.perf_counter()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TextColumn("{task.fields[folder]}", style="cyan"),
        console=console,
        expand=True,
        transient=True,
    ) as progress:
        task_id = progress.add_task("[bold green]轉檔中...", total=len(groups), folder="")

        def on_progress(current: int, total: int, group: FileGroup, status: GroupStatus | None) -> None:
            if status is not None:
                progress.update(task_id, advance=1, folder="", refresh=True)
            else:
                progress.update(task_id, folder=group.relative_folder)

        try:
            report = run_pipeline(
                groups,
                scanner.master_path,
                task_runner,
                _staging_parent(config),
                on_progress=on_progress,
                skip_up_to_date=skip_up_to_date,
                assemble=not no_assemble,
                keep_staging=config.keep_manifests,
            )
        except RunnerNotFoundError as e:
            console.print(f"[red]錯誤：{e}[/red]")
            console.print("[yellow]請確認 Navisworks 已安裝並可正常執行[/yellow]")
            raise typer.Exit(1)

    _finish(report, time.perf_counter() - start_time)


@app.command()
def assemble(
    root_dir: RootArgument = None,
    config_path: ConfigOption = None,
    output_dir: OutputOption = None,
    extensions: ExtOption = None,
    group_mode: GroupOption = None,
    runner: RunnerOption = None,
    nwd_version: VersionOption = None,
    master: MasterOption = None,
    keep: Annotated[
        bool,
        typer.Option(
            "--keep",
            help="保留暫存目錄（檔案清單與轉檔日誌）",
        ),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """
    只組合總模型

    不重新轉換分組，直接以各分組既有的 NWD 組合總模型。
    """
    setup_logging(verbose=verbose, log_dir=get_log_dir(), console=console)

    config = _resolve_config(
        config_path, root_dir, output_dir, extensions, group_mode, runner, nwd_version, master,
    )
    scanner = _make_scanner(config)
    groups = scanner.scan()
    submodels = [g.output_path for g in groups if g.output_exists]

    if not submodels:
        console.print("[red]錯誤：找不到任何已轉換的子模型，請先執行 convert[/red]")
        raise typer.Exit(1)

    console.print(f"[bold blue]子模型：[/bold blue]{len(submodels)} 個")
    task_runner = _make_runner(config)

    start_time = time.perf_counter()
    try:
        with BatchOrchestrator(
            task_runner,
            _staging_parent(config),
            keep_staging=keep or config.keep_manifests,
        ) as orchestrator:
            with console.status("[bold green]組合總模型中..."):
                result = orchestrator.assemble(scanner.master_path, submodels)
    except RunnerNotFoundError as e:
        console.print(f"[red]錯誤：{e}[/red]")
        raise typer.Exit(1)

    _finish(BatchReport(master=result), time.perf_counter() - start_time)


@app.command()
def scan(
    root_dir: RootArgument = None,
    config_path: ConfigOption = None,
    output_dir: OutputOption = None,
    extensions: ExtOption = None,
    group_mode: GroupOption = None,
    files: Annotated[
        bool,
        typer.Option(
            "--files",
            help="列出每個分組的來源檔案",
        ),
    ] = False,
) -> None:
    """
    掃描並列出分組

    僅執行掃描動作，以樹狀結構列出各分組與其轉檔狀態。

    範例：
    - 簡易掃描： nwbatch scan D:\\Project
    - 列出檔案： nwbatch scan D:\\Project --files
    """
    config = _resolve_config(config_path, root_dir, output_dir, extensions, group_mode)
    scanner = _make_scanner(config)

    with console.status("[bold green]掃描檔案中..."):
        groups = scanner.scan()

    title = f"找到 {len(groups)} 個分組"
    console.print(_build_groups_tree(groups, Path(config.root_dir), title, show_files=files))
    console.print(f"[bold blue]總模型：[/bold blue]{scanner.master_path}")


@app.command()
def locate(
    runner: RunnerOption = None,
    nwd_version: VersionOption = None,
) -> None:
    """
    尋找 FileToolsTaskRunner

    列出已安裝的 Navisworks，並顯示實際會使用的轉檔程式。
    """
    installations = list_installations()
    if installations:
        table = Table(title="已安裝的 Navisworks")
        table.add_column("產品", style="cyan")
        table.add_column("路徑")
        for installation in installations:
            table.add_row(installation.display_name, str(installation.executable))
        console.print(table)

    try:
        version = validate_nwd_version(nwd_version or "")
        executable = find_task_runner(runner, version)
    except (ValueError, RunnerNotFoundError) as e:
        console.print(f"[red]錯誤：{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold green]使用：[/bold green]{executable}")


@app.command("init-config")
def init_config(
    path: Annotated[
        Path,
        typer.Argument(
            help="設定檔輸出路徑",
            resolve_path=True,
            dir_okay=False,
        ),
    ],
    root_dir: Annotated[
        Optional[Path],
        typer.Option(
            "--root",
            help="寫入設定檔的根目錄",
            resolve_path=True,
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force", "-F",
            help="覆寫既有設定檔",
        ),
    ] = False,
) -> None:
    """
    建立預設設定檔
    """
    if path.exists() and not force:
        console.print(f"[red]錯誤：設定檔已存在：{path}（使用 --force 覆寫）[/red]")
        raise typer.Exit(1)

    config = get_default_config()
    if root_dir is not None:
        config.root_dir = str(root_dir)

    save_config(config, path)
    console.print(f"[green]已建立設定檔：[/green]{path}")


if __name__ == "__main__":
    app()
