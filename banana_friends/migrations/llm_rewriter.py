"""
LLM (Large Language Model) rewriter for community prompts
"""
import torch
from transformers import AutoTokenizer, AutoModelForCausalLM
from typing import Optional
import logging
from banana_friends.config.settings import settings
from banana_friends.migrations.validation import NO_CHANGE_SENTINEL, InvalidRewrite, validate_prompt_text

logger = logging.getLogger(__name__)

GENDER_CONVERSION_INSTRUCTION = f"""You are an expert at converting image generation prompts. Convert male-focused prompts to female-focused prompts while keeping the artistic style, setting and quality.
Rules:
1. Convert male subjects (man, guy, boy, he, his, him) to female (woman, girl, she, her)
2. Convert male descriptors (handsome, rugged, masculine) to female equivalents (beautiful, elegant, feminine)
3. Keep all style, lighting, composition, clothing, pose and setting details
4. Keep technical photography terms unchanged
5. If the prompt is already female-focused, gender-neutral, or has no people, answer exactly {NO_CHANGE_SENTINEL}
Answer only with the converted prompt or {NO_CHANGE_SENTINEL}, without labels or explanations."""

TRANSLATE_INSTRUCTION = f"""You translate image generation prompts into English.
Keep every visual detail, style keyword and technical term. Do not add or remove content.
If the prompt is already in English, answer exactly {NO_CHANGE_SENTINEL}.
Answer only with the translated prompt or {NO_CHANGE_SENTINEL}, without labels or explanations."""


class LLMRewriter:
    """
    Rewrites prompt text with a local causal language model.
    The model's answer is control data until validated: the sentinel means
    "leave the text alone" and is never returned as content.
    """
    def __init__(self, instruction: str, model_path: str = None):
        """
        Initialize the rewriter
        Args:
            instruction: System instruction describing the rewrite
            model_path: Path to LLM model (defaults to settings.LLM_MODEL_PATH)
        """
        self.instruction = instruction
        self.model_path = model_path or settings.LLM_MODEL_PATH
        self.model = None
        self.tokenizer = None
        self.device = "cuda" if torch.cuda.is_available() else "cpu"
        logger.info(f"Initializing LLM rewriter with model: {self.model_path} on {self.device}")

    def load_model(self):
        """Load LLM model and tokenizer"""
        try:
            logger.info("Loading LLM model...")
            self.tokenizer = AutoTokenizer.from_pretrained(self.model_path)
            if self.tokenizer.pad_token is None:
                self.tokenizer.pad_token = self.tokenizer.eos_token
            self.model = AutoModelForCausalLM.from_pretrained(
                self.model_path,
                torch_dtype=torch.float16 if self.device == "cuda" else torch.float32,
                device_map="auto" if self.device == "cuda" else None,
            )
            self.model.eval()
            logger.info("LLM model loaded successfully")
        except Exception as e:
            logger.error(f"Error loading LLM model: {e}")
            raise

    def _generate(self, text: str) -> str:
        if self.model is None:
            self.load_model()
        messages = [
            {"role": "system", "content": self.instruction},
            {"role": "user", "content": text},
        ]
        formatted_input = self.tokenizer.apply_chat_template(messages, tokenize=False, add_generation_prompt=True)
        inputs = self.tokenizer(formatted_input, return_tensors="pt", truncation=True, max_length=2048)
        inputs = {k: v.to(self.model.device) for k, v in inputs.items()}
        with torch.no_grad():
            outputs = self.model.generate(
                **inputs,
                max_new_tokens=512,
                do_sample=False,
                pad_token_id=self.tokenizer.eos_token_id,
            )
        generated_ids = outputs[0][inputs["input_ids"].shape[1]:]
        return self.tokenizer.decode(generated_ids, skip_special_tokens=True)

    @staticmethod
    def parse_answer(answer: str, original: str) -> Optional[str]:
        """
        Turn the raw model answer into replacement text
        Returns:
            None when the text should stay as it is, the cleaned rewrite otherwise
        Raises:
            InvalidRewrite when the answer is not usable content
        """
        cleaned = (answer or "").strip().strip("\"'").strip()
        if cleaned.upper() == NO_CHANGE_SENTINEL:
            return None
        validate_prompt_text(cleaned, field="rewrite", max_length=max(len(original) * 3, 200))
        if cleaned == original:
            return None
        return cleaned

    def rewrite(self, text: str) -> Optional[str]:
        """
        Rewrite one text
        Returns:
            The validated rewrite, or None when the model keeps the text or its answer is rejected
        """
        if not text or not text.strip():
            return None
        try:
            return self.parse_answer(self._generate(text), text)
        except InvalidRewrite as e:
            logger.warning(f"Rejected LLM rewrite: {e}")
            return None
