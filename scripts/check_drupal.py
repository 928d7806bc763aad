import argparse
import asyncio
import json
import os
import sys

from drupalcheck.runner import CheckReport, check_many
from drupalcheck.settings import configure_logging, load_settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Проверка: построен ли сайт на Drupal (только чтение, не более двух запросов на URL)."
    )
    parser.add_argument("urls", nargs="+", help="Абсолютные http/https URL для проверки.")
    parser.add_argument("--config", default=None, help="Путь к YAML-конфигу (иначе DRUPALCHECK_CONFIG_PATH).")
    parser.add_argument("--json", action="store_true", help="Вывести отчёты в JSON.")
    parser.add_argument("--log-level", default=None, help="Уровень логирования (по умолчанию из LOG_LEVEL).")
    return parser


def format_report(report: CheckReport) -> str:
    lines = [f"{report.target}: {'Drupal' if report.is_drupal else 'not Drupal'}"]
    if report.is_drupal and report.version:
        lines.append(f"  version: {report.version}")
    for key, status in report.results.items():
        lines.append(f"  {key}: {status}")
    for error in report.errors:
        lines.append(f"  error: {error.error_code} {error.message}")
    return "\n".join(lines)


def main() -> None:
    args = build_parser().parse_args()
    # Логирование настраиваем до загрузки конфига, чтобы видеть сообщения загрузчика.
    configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))
    settings = load_settings(args.config)

    reports = asyncio.run(check_many(args.urls, settings))

    if args.json:
        print(json.dumps([r.to_dict() for r in reports], ensure_ascii=False, indent=2))
    else:
        print("\n\n".join(format_report(r) for r in reports))

    sys.exit(0 if all(r.is_drupal for r in reports) else 1)


if __name__ == "__main__":
    main()
