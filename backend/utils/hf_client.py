"""
HuggingFace Client - Model loading and inference wrapper for question phrasing

Responsibilities:
- Load a causal LM (optionally 4-bit quantized on CUDA)
- Apply instruction formatting (tokenizer chat template, or family tags)
- Generate short text completions
- Handle CUDA errors

Design principles:
- Dependency injection (no singleton); injected into QuestionPhraser
- Fail fast on critical errors (CUDA unavailable, OOM at load)
- Only loaded by hosts that opt in (ASSESSMENT_USE_LLM=1)
"""

import logging
import time
from typing import Any, Dict, Optional

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer, BitsAndBytesConfig

logger = logging.getLogger(__name__)

DEVICE_CUDA = "cuda"
DEVICE_CPU = "cpu"
DEVICE_MAP_AUTO = "auto"

DEFAULT_MODEL = "mistralai/Mistral-7B-Instruct-v0.2"

# Instruction tags for families without a tokenizer chat template
INSTRUCTION_FORMATS = {
    "mistral": "[INST] {prompt} [/INST]",
    "llama": "[INST] {prompt} [/INST]",
    "zephyr": "<|user|>\n{prompt}\n<|assistant|>\n",
    "phi": "<|user|>\n{prompt}<|end|>\n<|assistant|>\n",
}


def detect_model_family(model_name: str) -> str:
    name_lower = model_name.lower()
    for family in ("mistral", "mixtral", "llama", "zephyr", "phi"):
        if family in name_lower:
            return "mistral" if family == "mixtral" else family
    return "generic"


class HuggingFaceClient:
    """Wrapper for HuggingFace model inference"""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        load_in_4bit: bool = True,
        device: str = DEVICE_CUDA
    ) -> None:
        """
        Initialize model and tokenizer

        Args:
            model_name: HuggingFace model identifier
            load_in_4bit: Use 4-bit quantization (CUDA only)
            device: Device to use ("cuda" or "cpu")

        Raises:
            RuntimeError: If CUDA requested but not available
            Exception: If model loading fails
        """
        self.model_name = model_name
        self.device = device
        self.model_family = detect_model_family(model_name)

        if device == DEVICE_CUDA and not torch.cuda.is_available():
            raise RuntimeError("CUDA requested but not available. Check nvidia-smi.")

        logger.info(f"Loading model: {model_name} (device={device}, 4-bit={load_in_4bit})")

        quantization_config = None
        if load_in_4bit and device == DEVICE_CUDA:
            quantization_config = BitsAndBytesConfig(
                load_in_4bit=True,
                bnb_4bit_quant_type="nf4",
                bnb_4bit_compute_dtype=torch.bfloat16,
                bnb_4bit_use_double_quant=True
            )

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(model_name)
            if self.tokenizer.pad_token is None:
                self.tokenizer.pad_token = self.tokenizer.eos_token
        except Exception as e:
            logger.error(f"Failed to load tokenizer: {e}")
            raise

        self.has_chat_template = getattr(self.tokenizer, 'chat_template', None) is not None

        try:
            self.model = AutoModelForCausalLM.from_pretrained(
                model_name,
                quantization_config=quantization_config,
                device_map=DEVICE_MAP_AUTO if device == DEVICE_CUDA else None,
                torch_dtype=torch.bfloat16 if device == DEVICE_CUDA else torch.float32
            )
        except torch.cuda.OutOfMemoryError:
            logger.error("CUDA Out of Memory during model loading")
            raise
        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise

        self.model.eval()
        logger.info(
            f"HuggingFace client initialized (family={self.model_family}, "
            f"chat_template={self.has_chat_template})"
        )

    def is_loaded(self) -> bool:
        return self.model is not None and self.tokenizer is not None

    def format_instruction(self, prompt: str) -> str:
        """
        Wrap a plain prompt for the model.

        Priority: tokenizer chat template, then family tags, then passthrough.
        """
        if self.has_chat_template:
            try:
                return self.tokenizer.apply_chat_template(
                    [{"role": "user", "content": prompt}],
                    tokenize=False,
                    add_generation_prompt=True
                )
            except Exception as e:
                logger.warning(f"Tokenizer chat template failed: {e}. Falling back to family tags")

        template = INSTRUCTION_FORMATS.get(self.model_family)
        if template is not None:
            return template.format(prompt=prompt)
        return prompt

    def generate(
        self,
        prompt: str,
        max_tokens: int = 64,
        temperature: float = 0.3
    ) -> str:
        """
        Generate text completion from prompt

        Raises:
            RuntimeError: If model not loaded
            torch.cuda.OutOfMemoryError: If GPU runs out of memory
        """
        if not self.is_loaded():
            raise RuntimeError("Model not loaded")

        start_time = time.time()

        inputs = self.tokenizer(self.format_instruction(prompt), return_tensors="pt")
        if self.device == DEVICE_CUDA:
            inputs = inputs.to(DEVICE_CUDA)
        prompt_tokens = inputs.input_ids.shape[1]

        try:
            with torch.no_grad():
                outputs = self.model.generate(
                    inputs.input_ids,
                    max_new_tokens=max_tokens,
                    temperature=temperature,
                    do_sample=temperature > 0,
                    pad_token_id=self.tokenizer.pad_token_id
                )
        except torch.cuda.OutOfMemoryError:
            logger.error(f"CUDA OOM during generation (prompt tokens: {prompt_tokens})")
            raise

        generated_ids = outputs[0][prompt_tokens:]
        text = self.tokenizer.decode(generated_ids, skip_special_tokens=True)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"Generated {len(generated_ids)} tokens in {elapsed_ms:.0f}ms")
        return text

    def get_model_info(self) -> Dict[str, Any]:
        info: Dict[str, Optional[Any]] = {
            "model_name": self.model_name,
            "model_family": self.model_family,
            "device": self.device,
            "is_loaded": self.is_loaded(),
            "chat_template": self.has_chat_template,
        }
        if self.device == DEVICE_CUDA and torch.cuda.is_available():
            info["gpu_memory_allocated_gb"] = torch.cuda.memory_allocated() / 1e9
        return info
