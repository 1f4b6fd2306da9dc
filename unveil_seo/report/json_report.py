# File: unveil_seo/report/json_report.py
"""
Генерация JSON-отчёта Unveil SEO.

Сериализация результата анализа текста (кандидаты в якоря, статистика,
найденные страницы) в файл.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Union


def render_json(data: Mapping[str, Any], output_path: Union[Path, str]) -> Path:
    """
    Сохраняет отчёт data в формате JSON по указанному пути.

    :param data: словарь результата (как его отдаёт HTTP API)
    :param output_path: путь к JSON-файлу
    :return: Path сохранённого файла

    Пример:
    ```python
    from unveil_seo.report.json_report import render_json
    report_path = render_json(result, 'reports/anchors.json')
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    # Запись в файл с отступами и Unicode
    with output.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)

    return output
