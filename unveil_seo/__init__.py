# File: unveil_seo/__init__.py
"""
Unveil SEO: подбор внутренних ссылок для текста по семантической близости
к страницам сайта, плюс загрузка сайта через внешний краулер.
"""

__version__ = "0.1.0"
