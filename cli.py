# cli.py
import json
from pathlib import Path
from typing import Optional

import typer

from backend.app import bootstrap
from backend.core.errors import UltraEdError
from plugins.core_archive import ArchiveReader
from plugins.core_archive.codec import decode
from plugins.core_archive.models import MODELS_KEY, SCENE_ENTRY_NAME
from plugins.core_assets import AssetType, ScanReport

app = typer.Typer(name="ultra", help="UltraEd project and scene archive tools.")


def _session():
    container = bootstrap()
    return container.resolve("project_session")


def _echo_report(report: Optional[ScanReport]):
    if report is None:
        return
    typer.echo(
        f"Scan #{report.epoch}: {len(report.added)} added, "
        f"{len(report.updated)} updated, {len(report.removed)} removed."
    )
    for failure in report.failures:
        typer.secho(f"  ! {failure.action.value} {failure.source_path}: {failure.reason}", fg=typer.colors.YELLOW)


@app.command("new")
def new_project(
    name: str = typer.Argument(..., help="Project name."),
    path: Path = typer.Argument(..., help="Directory the project is created in."),
    no_create_dir: bool = typer.Option(False, "--no-create-dir", help="Use PATH itself as the project root."),
):
    """Create a new project database and run the first scan."""
    session = _session()
    try:
        project = session.create(name, path, create_directory=not no_create_dir)
    except UltraEdError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.secho(f"Created project '{project.name}' at {project.root}", fg=typer.colors.GREEN)
    _echo_report(project.last_scan)
    # 首次扫描的结果也写回数据库
    project.save()
    session.close()


@app.command("scan")
def scan_project(path: Path = typer.Argument(..., help="Project root containing db.ultra.")):
    """Synchronize a project's Library with its directory tree and persist the index."""
    session = _session()
    try:
        project = session.open(path)
    except UltraEdError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    _echo_report(project.last_scan)
    if not project.save():
        typer.secho("Error: project database could not be written.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    session.close()


@app.command("assets")
def list_assets(
    path: Path = typer.Argument(..., help="Project root containing db.ultra."),
    asset_type: Optional[AssetType] = typer.Option(None, "--type", "-t", help="Only list one asset type."),
):
    """List the assets a project tracks."""
    session = _session()
    try:
        project = session.open(path)
    except UltraEdError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    records = project.assets(asset_type)
    if not records:
        typer.echo("No assets.")
    for record in records:
        typer.echo(f"{record.type.value:<8} {record.id}  {record.source_path}")
    session.close()


@app.command("previews")
def export_previews(
    path: Path = typer.Argument(..., help="Project root containing db.ultra."),
    out: Path = typer.Option(..., "--out", "-o", help="Directory the PNG previews are written to."),
):
    """Render asset previews and write them as PNG files named after the asset id."""
    session = _session()
    try:
        project = session.open(path)
    except UltraEdError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    out.mkdir(parents=True, exist_ok=True)
    written = 0
    for asset_type in (AssetType.MODEL, AssetType.TEXTURE):
        for asset_id, handle in project.previews(asset_type).items():
            if handle is None:
                continue
            handle.save(out / f"{asset_id}.png")
            written += 1

    typer.echo(f"Wrote {written} previews to {out}")
    session.close()


@app.command("inspect")
def inspect_archive(file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scene archive (.ultra).")):
    """Show the entries of a scene archive without loading it."""
    try:
        data = decode(file.read_bytes())
        with ArchiveReader(data) as reader:
            names = reader.names()
            scene = reader.find(SCENE_ENTRY_NAME)
    except UltraEdError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"{file}: {len(names)} entries")
    for name in names:
        typer.echo(f"  {name}")

    if scene is None:
        typer.secho(f"Missing '{SCENE_ENTRY_NAME}' entry.", fg=typer.colors.YELLOW)
        return
    try:
        document = json.loads(scene.payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        typer.secho(f"Scene document could not be parsed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    sections = sorted(k for k in document if k != MODELS_KEY)
    typer.echo(f"Sections: {', '.join(sections) if sections else '(none)'}")
    typer.echo(f"Models: {len(document.get(MODELS_KEY, []))}")


if __name__ == "__main__":
    app()
