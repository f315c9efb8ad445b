"""截止日期定时任务：锁定已过截止日期的定稿提交，并发送临近截止提醒。

用法::

    python scripts/process_deadlines.py            # 锁定 + 提醒
    python scripts/process_deadlines.py --no-lock  # 只发提醒
"""
import argparse
import sys
from pathlib import Path

# 添加项目根目录到 path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capstone.config import get_settings
from capstone.db import Base, engine, session_scope
from capstone.logging_config import setup_logging
from capstone.services import build_services


def main(argv=None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Process project deadlines")
    parser.add_argument(
        "--within-hours",
        type=int,
        default=settings.deadline_reminder_hours,
        help="提醒窗口（小时）",
    )
    parser.add_argument("--no-lock", action="store_true", help="不执行到期锁定")
    parser.add_argument("--no-remind", action="store_true", help="不发送提醒")
    args = parser.parse_args(argv)

    setup_logging(settings)
    Base.metadata.create_all(bind=engine)
    services = build_services(settings)

    with session_scope() as db:
        if not args.no_lock:
            report = services.jobs.lock_passed_deadlines(db)
            print(f"已锁定 {len(report.locked)} 份提交，跳过 {len(report.skipped)} 份")
        if not args.no_remind:
            report = services.jobs.send_deadline_reminders(db, args.within_hours)
            print(f"已发送 {report.reminders} 条截止提醒")
    return 0


if __name__ == "__main__":
    sys.exit(main())
