"""
Subtitle Backend Registry

백엔드 모듈은 @BackendRegistry.register 데코레이터로 자신을 등록한다.
'enabled' 메타데이터가 False면 등록은 되지만 수집 순서에서 제외된다 (예: API 키 없음).
"""

import importlib
import logging
from pathlib import Path
from typing import Dict, List, Type

from subtitles.base import SubtitleBackend

log = logging.getLogger(__name__)

# 백엔드가 아닌 subtitles 패키지 모듈
_NON_BACKEND_MODULES = frozenset({'__init__', 'base', 'plugin_manager', 'acquirer', 'validator'})


class BackendRegistry:
    """자막 백엔드 레지스트리 (이름 → 클래스)"""

    _backends: Dict[str, Type[SubtitleBackend]] = {}
    _metadata: Dict[str, dict] = {}

    @classmethod
    def register(cls, name: str, *, description: str = '', enabled: bool = True):
        """
        Example:
            @BackendRegistry.register('yify', description='YIFY subtitles')
            class YifyBackend(SubtitleBackend):
                ...
        """
        def decorator(backend_class):
            if not _is_backend_class(backend_class):
                raise TypeError(f"{backend_class!r} is not a SubtitleBackend subclass")
            if name in cls._backends and cls._backends[name] is not backend_class:
                log.warning("Backend '%s' re-registered: %s -> %s",
                            name, cls._backends[name].__name__, backend_class.__name__)
            cls._backends[name] = backend_class
            cls._metadata[name] = {'description': description, 'enabled': bool(enabled)}
            log.debug("Registered backend: %s -> %s", name, backend_class.__name__)
            return backend_class

        return decorator

    @classmethod
    def get_backend(cls, name: str) -> SubtitleBackend:
        """
        Raises:
            ValueError: 등록되지 않은 이름
        """
        try:
            backend_class = cls._backends[name]
        except KeyError:
            raise ValueError(
                f"Unknown subtitle backend: '{name}'. "
                f"Available: {', '.join(cls._backends) or '(none)'}"
            ) from None
        return backend_class()

    @classmethod
    def list_backends(cls) -> List[dict]:
        return [
            {
                'name': name,
                'class_name': backend_class.__name__,
                'module': backend_class.__module__,
                'description': cls._metadata[name]['description'],
                'enabled': cls._metadata[name]['enabled'],
            }
            for name, backend_class in cls._backends.items()
        ]

    @classmethod
    def is_enabled(cls, name: str) -> bool:
        return cls._metadata.get(name, {}).get('enabled', False)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._backends

    @classmethod
    def in_order(cls, names: List[str]) -> List[SubtitleBackend]:
        """설정 순서대로 활성 백엔드 인스턴스 생성. 모르는 이름/비활성 백엔드는 건너뜀."""
        backends: List[SubtitleBackend] = []
        for name in (n.strip() for n in names):
            if not name:
                continue
            if not cls.is_registered(name):
                log.error("Unknown subtitle backend in ENABLED_BACKENDS: %s", name)
            elif not cls.is_enabled(name):
                log.info("Backend disabled (missing configuration): %s", name)
            else:
                backends.append(cls.get_backend(name))
        return backends

    @classmethod
    def auto_discover(cls, package_name: str = 'subtitles') -> int:
        """패키지 내 백엔드 모듈 임포트 (데코레이터 등록 트리거). 등록된 백엔드 수 반환."""
        for file_path in sorted(Path(__file__).parent.glob("*.py")):
            if file_path.stem in _NON_BACKEND_MODULES:
                continue
            module_name = f"{package_name}.{file_path.stem}"
            try:
                importlib.import_module(module_name)
            except ImportError:
                log.exception("Failed to import backend module: %s", module_name)

        log.info("Backend discovery: %d registered (%s)", len(cls._backends), ", ".join(cls._backends))
        return len(cls._backends)

    @classmethod
    def unregister(cls, name: str) -> bool:
        cls._metadata.pop(name, None)
        return cls._backends.pop(name, None) is not None


def _is_backend_class(obj) -> bool:
    return isinstance(obj, type) and issubclass(obj, SubtitleBackend)
