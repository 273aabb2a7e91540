"""
프롬프트 템플릿 로더 유틸리티

YAML 형식으로 저장된 프롬프트 세트를 로드하는 모듈.
- 파일명 기반 버전 관리 (예: default.yaml, v2.yaml)
- 파이프라인별 디렉토리 (content_generation, knowledge_generation)
- 한 파일 안에 티어/섹션별 템플릿을 `templates:` 매핑으로 묶어서 관리

사용 예시:
    prompts = load_prompt_set("default", pipeline_type="content_generation")
    template = prompts.get("brief")
    user_prompt = template.format_user_prompt(name="Colosseum", source_text="...")
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

PROMPTS_ROOT = Path(__file__).resolve().parent.parent / "prompts"

# 파이프라인별 기본 디렉토리 매핑
PIPELINE_DIRECTORIES = {
    "content_generation": PROMPTS_ROOT / "content_generation",
    "knowledge_generation": PROMPTS_ROOT / "knowledge_generation",
}


class PromptTemplate:
    """
    단일 프롬프트 템플릿 (Chat Completions API용)

    system_prompt + user_prompt_template + parameters(max_tokens, temperature 등)
    """

    def __init__(self, key: str, template_data: Dict[str, Any]):
        """
        Args:
            key: 템플릿 키 (티어 또는 섹션 이름)
            template_data: YAML에서 로드한 템플릿 데이터
        """
        self.key = key
        self.description = template_data.get("description", "")
        self.system_prompt = template_data.get("system_prompt", "")
        self.user_prompt_template = template_data.get("user_prompt_template", "")
        self.parameters = template_data.get("parameters", {}) or {}

        if not self.user_prompt_template:
            raise ValueError(f"프롬프트 템플릿 '{key}'에 user_prompt_template이 없습니다.")

    @property
    def max_tokens(self) -> int:
        return int(self.parameters.get("max_tokens", 500))

    @property
    def temperature(self) -> float:
        return float(self.parameters.get("temperature", 0.7))

    @property
    def json_mode(self) -> bool:
        return bool(self.parameters.get("json_mode", False))

    def format_user_prompt(self, **kwargs) -> str:
        """
        유저 프롬프트 템플릿에 변수 치환

        Args:
            **kwargs: 템플릿 변수 (예: name, source_text, brief_excerpt)

        Returns:
            치환된 프롬프트 문자열
        """
        # 파라미터 기본값과 전달된 값을 병합
        params = {**self.parameters, **kwargs}
        return self.user_prompt_template.format(**params)


class PromptSet:
    """하나의 YAML 파일에 정의된 템플릿 묶음"""

    def __init__(self, version: str, data: Dict[str, Any]):
        self.version = version
        self.name = data.get("name", "")
        self.description = data.get("description", "")
        templates = data.get("templates") or {}
        if not isinstance(templates, dict) or not templates:
            raise ValueError(f"프롬프트 세트 '{version}'에 templates 매핑이 없습니다.")
        self.templates = {
            key: PromptTemplate(key, value) for key, value in templates.items()
        }

    def get(self, key: str) -> PromptTemplate:
        try:
            return self.templates[key]
        except KeyError:
            raise KeyError(
                f"프롬프트 세트 '{self.version}'에 '{key}' 템플릿이 없습니다. "
                f"사용 가능한 키: {sorted(self.templates)}"
            ) from None

    def __contains__(self, key: str) -> bool:
        return key in self.templates


def _resolve_dir(prompt_dir: Optional[Path], pipeline_type: str) -> Path:
    if prompt_dir is not None:
        return Path(prompt_dir)
    if pipeline_type not in PIPELINE_DIRECTORIES:
        raise ValueError(
            f"지원하지 않는 pipeline_type: {pipeline_type}. "
            f"가능한 값: {list(PIPELINE_DIRECTORIES.keys())}"
        )
    return PIPELINE_DIRECTORIES[pipeline_type]


def load_prompt_set(
    version: str = "default",
    pipeline_type: str = "content_generation",
    prompt_dir: Optional[Path] = None,
) -> PromptSet:
    """
    프롬프트 세트 로드

    Args:
        version: 버전 (파일명, 예: "default", "v2")
        pipeline_type: 파이프라인 타입 ("content_generation" 또는 "knowledge_generation")
        prompt_dir: 프롬프트 디렉토리 (명시하지 않으면 pipeline_type으로 결정)

    Returns:
        PromptSet 객체

    Raises:
        FileNotFoundError: 템플릿 파일을 찾을 수 없을 때
        ValueError: 지원하지 않는 pipeline_type이거나 파일 형식이 잘못되었을 때
    """
    directory = _resolve_dir(prompt_dir, pipeline_type)

    # .yaml 확장자 자동 추가
    template_file = directory / (version if version.endswith(".yaml") else f"{version}.yaml")

    if not template_file.exists():
        raise FileNotFoundError(
            f"프롬프트 템플릿을 찾을 수 없습니다: {template_file}\n"
            f"사용 가능한 버전: {list_prompts(pipeline_type=pipeline_type, prompt_dir=directory)}"
        )

    logger.info(f"프롬프트 템플릿 로드: {template_file}")
    with open(template_file, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return PromptSet(template_file.stem, data)


def list_prompts(
    pipeline_type: str = "content_generation",
    prompt_dir: Optional[Path] = None,
) -> List[str]:
    """
    사용 가능한 프롬프트 버전 목록 조회

    Returns:
        버전 리스트 (예: ["default", "v2"])
    """
    directory = _resolve_dir(prompt_dir, pipeline_type)
    if not directory.exists():
        logger.warning(f"프롬프트 디렉토리를 찾을 수 없습니다: {directory}")
        return []

    return sorted(f.stem for f in directory.glob("*.yaml") if f.is_file())
