# Rev 0.2.3

# src/focuslog/main.py  (Rev 0.2.3)
import sys
from pathlib import Path

from PySide6.QtCore import QCoreApplication

from focuslog.app_context import AppContext
from focuslog.models.entities import ItemKind
from focuslog.services.projector import HeaderRow, ItemRow
from focuslog.utils.config import load_settings, save_settings, settings_file
from focuslog.utils.logging_setup import get_logger, setup_logging


def _load_or_seed_settings():
    path = settings_file()
    settings = load_settings(path)
    if not path.exists():
        # first run: leave an editable copy of the defaults
        save_settings(settings, path)
    return settings


def _print_tasks(ctx: AppContext) -> None:
    for row in ctx.lists[ItemKind.TASK].flattened_display():
        if isinstance(row, HeaderRow):
            print(row.title)
        elif isinstance(row, ItemRow):
            mark = "x" if row.item.is_completed else " "
            print(f"{'  ' * (row.depth + 1)}[{mark}] {row.item.title}")


def _print_timeline(ctx: AppContext) -> None:
    timeline = ctx.timeline
    print(f"Timeline {timeline.day.isoformat()}")
    for block in timeline.timed_blocks():
        item = ctx.items_repo.get_item(block.item_id)
        title = item.title if item else block.item_id
        start, end = block.scheduled_start, block.end_time(ctx.grid.default_duration)
        print(f"  {start:%H:%M}-{end:%H:%M} {title}")


def main(argv=None):
    argv = list(sys.argv if argv is None else argv)
    app = QCoreApplication.instance() or QCoreApplication(argv)
    QCoreApplication.setOrganizationName("focuslog")
    QCoreApplication.setApplicationName("focuslog")

    logfile = setup_logging("focuslog")
    print(f"[logging] Writing to: {logfile}")
    log = get_logger("main")

    settings = _load_or_seed_settings()
    db_path = Path(argv[1]) if len(argv) > 1 else None

    # --- DI wiring ---
    ctx = AppContext.create(db_path=db_path, settings=settings)
    try:
        ctx.reload_all()
        log.info("Loaded %s", ", ".join(f"{k.value}={len(vm.store)}" for k, vm in ctx.lists.items()))
        _print_tasks(ctx)
        _print_timeline(ctx)
    finally:
        ctx.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
