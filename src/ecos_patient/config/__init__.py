"""Configurações centralizadas do ecos_patient.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única

Uso típico:
    from ecos_patient.config import get_settings
"""

from ecos_patient.config.settings import RECORD_STORE_BACKENDS, Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "RECORD_STORE_BACKENDS",
]
