#!/usr/bin/env python3
"""
Model Manager Service
=====================

Owns the three inference models a verification needs. All of them are
required: they are loaded together before the first request, shared by every
request and released together at shutdown.
"""

import threading
import time
import logging
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass
from enum import Enum

from ..config import Config
from ..models.base import BaseModel, ModelFactory
from ..core.exceptions import FaceMatchServiceError, ModelLoadError, ModelNotLoadedError

# Importing the implementations registers them with ModelFactory
from ..models.face_detection import scrfd_detector  # noqa: F401
from ..models.recognition import arcface_embedder  # noqa: F401
from ..models.liveness import antispoofing  # noqa: F401

DETECTOR = 'detector'
EMBEDDER = 'embedder'
LIVENESS = 'liveness'


class ModelStatus(Enum):
    """Model status enumeration"""
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass
class ModelState:
    """Lifecycle record of one managed model"""
    model_type: str
    config: Dict[str, Any]
    priority: int
    model: Optional[BaseModel] = None
    status: ModelStatus = ModelStatus.NOT_LOADED
    error_message: Optional[str] = None
    load_time: Optional[float] = None

    @property
    def ready(self) -> bool:
        return self.status == ModelStatus.LOADED and self.model is not None


class ModelManager:
    """Loads, hands out and releases the detector, embedder and liveness models"""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.logger = logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._states: Dict[str, ModelState] = {
            DETECTOR: ModelState('scrfd_face_detection', self.config.get_detector_config(), 1),
            EMBEDDER: ModelState('arcface_embedding', self.config.get_embedder_config(), 2),
            LIVENESS: ModelState('caffe_antispoofing', self.config.get_antispoofing_config(), 3),
        }

    def _state(self, name: str) -> ModelState:
        try:
            return self._states[name]
        except KeyError:
            raise ModelNotLoadedError(name)

    def load_model(self, name: str) -> BaseModel:
        """
        Load one model, or return it if already loaded

        Missing or unreadable artifacts surface as the model's own service
        error; anything unexpected is wrapped in ModelLoadError.
        """
        with self._lock:
            state = self._state(name)
            if state.ready:
                return state.model

            state.status = ModelStatus.LOADING
            state.error_message = None
            started = time.time()
            self.logger.info(f"Loading model: {name} ({state.model_type})")

            try:
                model = ModelFactory.create(state.model_type, name, state.config)
                model.load_model()
                if not model.is_loaded():
                    raise ModelLoadError(name, "model reports not loaded after load_model()")

            except FaceMatchServiceError as e:
                state.status, state.error_message, state.model = ModelStatus.ERROR, e.message, None
                self.logger.error(f"Failed to load model {name}: {e.message}")
                raise

            except Exception as e:
                state.status, state.error_message, state.model = ModelStatus.ERROR, str(e), None
                self.logger.error(f"Failed to load model {name}: {e}")
                raise ModelLoadError(name, str(e))

            state.model = model
            state.status = ModelStatus.LOADED
            state.load_time = time.time() - started
            self.logger.info(f"✅ Model {name} loaded successfully in {state.load_time:.2f}s")
            return model

    def unload_model(self, name: str) -> bool:
        """Release one model; False when it was not loaded"""
        with self._lock:
            state = self._state(name)
            if not state.ready:
                return False

            state.model.unload_model()
            state.model = None
            state.status = ModelStatus.NOT_LOADED
            state.error_message = None
            self.logger.info(f"Model {name} unloaded")
            return True

    def get_model(self, name: str, auto_load: bool = True) -> BaseModel:
        """Loaded model by name; loads it first when auto_load is set"""
        state = self._state(name)
        if state.ready:
            return state.model
        if not auto_load:
            raise ModelNotLoadedError(name)
        return self.load_model(name)

    def is_model_loaded(self, name: str) -> bool:
        state = self._states.get(name)
        return state is not None and state.ready

    def get_model_status(self, name: str) -> Dict[str, Any]:
        """Status document for one model"""
        state = self._states.get(name)
        if state is None:
            return {'error': 'Model not registered'}

        status = {
            'name': name,
            'type': state.model_type,
            'status': state.status.value,
            'error_message': state.error_message,
            'load_time': state.load_time,
            'priority': state.priority,
        }

        if state.model is not None:
            info = state.model.get_info()
            status['model_info'] = {
                'version': info.version,
                'provider': info.provider,
                'capabilities': info.capabilities,
            }
            performance = state.model.get_performance()
            status['performance'] = None if performance is None else {
                'load_time_ms': performance.load_time_ms,
                'inference_time_ms': performance.inference_time_ms,
                'inference_count': performance.inference_count,
            }

        return status

    def get_all_model_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: self.get_model_status(name) for name in self._states}

    def _load_order(self) -> Tuple[str, ...]:
        return tuple(sorted(self._states, key=lambda name: self._states[name].priority))

    def load_all_models(self) -> Dict[str, BaseModel]:
        """
        Load every model in priority order

        The first failure unloads whatever was already loaded and re-raises,
        so the manager is never left half-ready.
        """
        loaded = {}
        try:
            for name in self._load_order():
                loaded[name] = self.load_model(name)
        except FaceMatchServiceError:
            self.unload_all_models()
            raise
        return loaded

    def unload_all_models(self) -> Dict[str, bool]:
        """Release every loaded model; maps name to whether it was unloaded"""
        return {name: self.unload_model(name) for name in reversed(self._load_order())}

    def __enter__(self):
        self.load_all_models()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unload_all_models()
