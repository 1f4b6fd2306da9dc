# === FILE: unveil_seo/cli.py ===
#!/usr/bin/env python3
"""
Точка входа Unveil SEO для командной строки.

Команды:
  serve       Запустить HTTP API
  crawl       Прокраулить сайт и сохранить страницы в индекс
  embed       Сгенерировать эмбеддинги для страниц без них
  anchors     Найти кандидаты в якоря в тексте (и подобрать страницы с --match)
  suggest     Подобрать страницы для одного текста якоря
  check-url   Проверить URL правилами фильтра индексации
  config      Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (default: configs/default.yaml, если есть)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stdout, если не указан)
  --log-format FORMAT Формат логирования (e.g. "%(asctime)s %(levelname)s %(message)s")

Дополнительно:
  --version, -v       Показать версию Unveil SEO

Пример:
  unveil-seo anchors article.txt --match --html reports/anchors.html
"""
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from pydantic import ValidationError

from unveil_seo import __version__
from unveil_seo.config import AppConfig, load_config
from unveil_seo.crawler.models import CrawlRequest
from unveil_seo.engine import Engine
from unveil_seo.errors import UnveilError
from unveil_seo.filters.urlfilter import exclusion_reason
from unveil_seo.linking.anchors import AnchorCandidate, analysis_stats, extract_anchor_candidates
from unveil_seo.logger import configure
from unveil_seo.report.html_report import render_html
from unveil_seo.report.json_report import render_json
from unveil_seo.web.app import run_server

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def _echo_json(data: Any, pretty: bool = True) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, indent=2 if pretty else None))


# --------------------------------------------------------------------------- #
# Coroutines behind the commands (module level so tests can patch them)       #
# --------------------------------------------------------------------------- #


async def run_crawl(cfg: AppConfig, request: CrawlRequest) -> Dict[str, Any]:
    engine = Engine(cfg)
    try:
        job = await engine.pipeline.crawl(request)
        return job.to_row()
    finally:
        await engine.close()


async def run_embeddings(cfg: AppConfig) -> Dict[str, int]:
    engine = Engine(cfg)
    try:
        return await engine.batcher().run()
    finally:
        await engine.close()


async def match_candidates(cfg: AppConfig, candidates: List[AnchorCandidate]) -> Dict[str, Any]:
    engine = Engine(cfg)
    try:
        return (await engine.matcher().match_candidates(candidates)).to_dict()
    finally:
        await engine.close()


async def suggest_links(cfg: AppConfig, anchor_text: str, max_options: int) -> List[Dict[str, Any]]:
    engine = Engine(cfg)
    try:
        options = await engine.matcher().match_anchor(anchor_text, max_options=max_options)
        return [o.to_dict() for o in options]
    finally:
        await engine.close()


# --------------------------------------------------------------------------- #
# Commands                                                                    #
# --------------------------------------------------------------------------- #


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='Unveil SEO, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stdout, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format):
    """Группа команд Unveil SEO CLI."""
    configure(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path)
    except (OSError, ValueError, TypeError, ValidationError) as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg


@cli.command('serve', context_settings=CONTEXT_SETTINGS)
@click.option('--host', default=None, help='Адрес (override server.host)')
@click.option('--port', type=int, default=None, help='Порт (override server.port)')
@click.pass_context
def serve(ctx, host, port):
    """Запустить HTTP API."""
    run_server(ctx.obj['config'], host=host, port=port)


@cli.command('crawl', context_settings=CONTEXT_SETTINGS)
@click.argument('base_url')
@click.option('--max-pages', '-n', 'max_pages', type=int, default=None, help='Макс. число страниц')
@click.option('--exclude', '-x', 'exclude', multiple=True, help='Шаблон пути для исключения (можно повторять)')
@click.option('--force', is_flag=True, help='Перезаписать уже сохранённые страницы')
@click.pass_context
def crawl(ctx, base_url, max_pages, exclude, force):
    """Прокраулить сайт и дождаться завершения задачи."""
    cfg = ctx.obj['config']
    max_pages = max_pages or cfg.crawl.default_max_pages
    if not 1 <= max_pages <= cfg.crawl.max_pages_limit:
        print_error(f'Max pages must be between 1 and {cfg.crawl.max_pages_limit}')
    try:
        request = CrawlRequest(
            base_url=base_url, max_pages=max_pages, exclude_patterns=list(exclude), force_recrawl=force
        )
    except ValidationError as e:
        print_error(f'Некорректные параметры: {e.errors()[0]["msg"]}')
    try:
        job = asyncio.run(run_crawl(cfg, request))
    except UnveilError as e:
        print_error(f'Ошибка краулинга: {e.message}')
    _echo_json(job)
    if job.get('status') == 'failed':
        sys.exit(2)


@cli.command('embed', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def embed(ctx):
    """Сгенерировать эмбеддинги для всех страниц без них."""
    try:
        totals = asyncio.run(run_embeddings(ctx.obj['config']))
    except UnveilError as e:
        print_error(f'Ошибка генерации эмбеддингов: {e.message}')
    _echo_json(totals)


@cli.command('anchors', context_settings=CONTEXT_SETTINGS)
@click.argument('text_file', type=click.File('r', encoding='utf-8'))
@click.option('--match', 'do_match', is_flag=True, help='Подобрать страницы для найденных якорей')
@click.option(
    '--json', '-j', 'json_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Сохранить JSON-отчёт в файл'
)
@click.option(
    '--html', '-h', 'html_output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Сохранить HTML-отчёт в файл'
)
@click.option(
    '--template', '-t', 'template_dir',
    default=None,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help='Папка с Jinja2-шаблонами (встроенные, если не указана)'
)
@click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')
@click.pass_context
def anchors(ctx, text_file, do_match, json_output, html_output, template_dir, pretty):
    """Найти кандидаты в якоря в тексте из TEXT_FILE ('-' для stdin)."""
    cfg = ctx.obj['config']
    text = text_file.read()
    if len(text) > cfg.server.max_text_length:
        print_error(f'Текст слишком длинный (макс. {cfg.server.max_text_length} символов)')

    candidates = extract_anchor_candidates(text)
    result: Dict[str, Any] = {
        'candidates': [c.to_dict() for c in candidates],
        'stats': analysis_stats(text, candidates),
    }
    if do_match and candidates:
        try:
            result.update(asyncio.run(match_candidates(cfg, candidates)))
        except UnveilError as e:
            print_error(f'Ошибка подбора страниц: {e.message}')

    # Если не сохраняем в файл - печатаем в stdout
    if not json_output and not html_output:
        _echo_json(result, pretty)
        return

    if json_output:
        try:
            click.echo(f'JSON report: {render_json(result, json_output)}')
        except OSError as e:
            print_error(f'Ошибка при сохранении JSON: {e}')

    if html_output:
        try:
            click.echo(f'HTML report: {render_html(result, template_dir, html_output, source_text=text)}')
        except OSError as e:
            print_error(f'Ошибка при сохранении HTML: {e}')


@cli.command('suggest', context_settings=CONTEXT_SETTINGS)
@click.argument('anchor_text')
@click.option('--max', '-m', 'max_options', type=int, default=5, show_default=True, help='Число вариантов')
@click.pass_context
def suggest(ctx, anchor_text, max_options):
    """Подобрать страницы для текста якоря."""
    cfg = ctx.obj['config']
    if not anchor_text.strip():
        print_error('Текст якоря не может быть пустым')
    if len(anchor_text) > cfg.server.max_anchor_length:
        print_error(f'Текст якоря длиннее {cfg.server.max_anchor_length} символов')
    capped = max(1, min(max_options, cfg.matching.max_suggestions))
    try:
        options = asyncio.run(suggest_links(cfg, anchor_text, capped))
    except UnveilError as e:
        print_error(f'Ошибка подбора страниц: {e.message}')
    _echo_json(options)


@cli.command('check-url', context_settings=CONTEXT_SETTINGS)
@click.argument('urls', nargs=-1, required=True)
@click.option('--meta', 'meta_description', default=None, help='Meta description страницы')
@click.pass_context
def check_url(ctx, urls, meta_description):
    """Проверить, будут ли URL проиндексированы."""
    filters = ctx.obj['config'].filters
    for url in urls:
        reason = exclusion_reason(
            url,
            meta_description,
            site_patterns=filters.site_specific_patterns,
            max_depth=filters.max_path_depth,
            numeric_id_length=filters.long_numeric_id,
        )
        if reason:
            click.echo(f'EXCLUDE {url}  ({reason})')
        else:
            click.echo(f'INDEX   {url}')


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
