import asyncio
from typing import Any
from uuid import uuid4

from prometheus_client import Counter, Histogram
from pydantic import BaseModel

from callprep.logger import logger
from callprep.processors.errors import (
    STAGE_ERRORS,
    CompressionCancelledError,
    CompressionError,
)
from callprep.processors.types import PipelineStage


class PipelineEvent(BaseModel):
    processor: str
    uid: str
    data: Any


class Emitter:
    def __init__(self, **kwargs):
        self._callbacks = {}

        # register callbacks from kwargs (on_*)
        for key, value in kwargs.items():
            if key.startswith("on_"):
                self.on(value, name=key[3:])

    def on(self, callback, name="default"):
        """
        Register a callback to be called when data is emitted
        """
        # ensure callback is asynchronous
        if not asyncio.iscoroutinefunction(callback):
            raise ValueError("Callback must be a coroutine function")
        if name not in self._callbacks:
            self._callbacks[name] = []
        self._callbacks[name].append(callback)

    def off(self, callback, name="default"):
        """
        Unregister a callback to be called when data is emitted
        """
        if name not in self._callbacks:
            return
        self._callbacks[name].remove(callback)

    async def emit(self, data, name="default"):
        if name not in self._callbacks:
            return
        for callback in self._callbacks[name]:
            await callback(data)


class Processor(Emitter):
    INPUT_TYPE: type = None
    OUTPUT_TYPE: type = None
    STAGE: PipelineStage | None = None

    m_processor = Histogram(
        "processor",
        "Time spent in Processor.process",
        ["processor"],
    )
    m_processor_call = Counter(
        "processor_call",
        "Number of calls to Processor.process",
        ["processor"],
    )
    m_processor_success = Counter(
        "processor_success",
        "Number of successful calls to Processor.process",
        ["processor"],
    )
    m_processor_failure = Counter(
        "processor_failure",
        "Number of failed calls to Processor.process",
        ["processor"],
    )

    def __init__(self, callback=None, custom_logger=None, **kwargs):
        super().__init__(**kwargs)
        self.name = name = self.__class__.__name__
        self.m_processor = self.m_processor.labels(name)
        self.m_processor_call = self.m_processor_call.labels(name)
        self.m_processor_success = self.m_processor_success.labels(name)
        self.m_processor_failure = self.m_processor_failure.labels(name)
        self._processors = []

        # register callbacks
        if callback:
            self.on(callback)

        self.uid = uuid4().hex
        self.logger = (custom_logger or logger).bind(processor=self.__class__.__name__)
        self.pipeline = None

    def set_pipeline(self, pipeline: "Pipeline"):
        # if pipeline is used, pipeline logger will be used instead
        self.pipeline = pipeline
        self.logger = pipeline.logger.bind(processor=self.__class__.__name__)

    def connect(self, processor: "Processor"):
        """
        Connect this processor output to another processor
        """
        if processor.INPUT_TYPE != self.OUTPUT_TYPE:
            raise ValueError(
                f"Processor {processor} input type {processor.INPUT_TYPE} "
                f"does not match {self.OUTPUT_TYPE}"
            )
        self._processors.append(processor)

    @property
    def filename(self) -> str | None:
        if self.pipeline:
            return self.pipeline.filename
        return None

    async def emit(self, data, name="default"):
        if name == "default":
            if self.pipeline:
                await self.pipeline.emit(
                    PipelineEvent(processor=self.name, uid=self.uid, data=data)
                )
        await super().emit(data, name=name)
        if name == "default":
            for processor in self._processors:
                await processor.push(data)

    async def push(self, data):
        """
        Push data to this processor. `data` must be of type `INPUT_TYPE`
        The function returns the output of type `OUTPUT_TYPE`

        Any failure is raised as a `CompressionError` tagged with the stage
        of the processor that failed; errors coming from a downstream
        processor are raised untouched.
        """
        self.m_processor_call.inc()
        try:
            if self.pipeline and self.STAGE:
                self.pipeline.enter_stage(self.STAGE)
            with self.m_processor.time():
                ret = await self._push(data)
            self.m_processor_success.inc()
            return ret
        except CompressionError as e:
            if e.stage == self.STAGE:
                self.m_processor_failure.inc()
                self.logger.error("Stage failed", stage=e.stage, error=e.message)
            if self.pipeline:
                self.pipeline.fail(e)
            raise
        except Exception as e:
            self.m_processor_failure.inc()
            self.logger.exception("Error in push")
            error_cls = STAGE_ERRORS.get(self.STAGE, CompressionError)
            error = error_cls(
                str(e) or e.__class__.__name__,
                filename=self.filename,
                stage=self.STAGE,
            )
            if self.pipeline:
                self.pipeline.fail(error)
            raise error from e

    async def _push(self, data):
        raise NotImplementedError


class Pipeline(Processor):
    """
    A pipeline of processors, run for a single input

    The pipeline follows the state of the processor currently working:
    IDLE -> DECODING -> RESAMPLING -> CONDITIONING -> ENCODING -> DONE,
    or FAILED from any stage, keeping the stage and error that caused it.
    """

    INPUT_TYPE = None
    OUTPUT_TYPE = None

    def __init__(
        self,
        *processors: Processor,
        filename: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        super().__init__()
        self.logger = logger.bind(pipeline=self.uid, filename=filename)
        self.logger.debug("Pipeline created")

        self.processors = processors
        self._filename = filename
        self.cancel_event = cancel_event
        self.state = PipelineStage.IDLE
        self.failed_stage: PipelineStage | None = None
        self.error: CompressionError | None = None

        for processor in processors:
            processor.set_pipeline(self)

        for i in range(len(processors) - 1):
            processors[i].connect(processors[i + 1])

        self.INPUT_TYPE = processors[0].INPUT_TYPE
        self.OUTPUT_TYPE = processors[-1].OUTPUT_TYPE

    @property
    def filename(self) -> str | None:
        return self._filename

    def enter_stage(self, stage: PipelineStage):
        """
        Move the pipeline to `stage`, unless the caller cancelled the run
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CompressionCancelledError(
                f"cancelled before {stage.value}",
                filename=self.filename,
                stage=stage,
            )
        self.logger.debug("Pipeline stage", stage=stage)
        self.state = stage

    def fail(self, error: CompressionError):
        # the first failing stage wins, upstream processors re-raise it
        if self.state == PipelineStage.FAILED:
            return
        self.failed_stage = error.stage
        self.error = error
        self.state = PipelineStage.FAILED

    def done(self):
        self.state = PipelineStage.DONE

    async def _push(self, data):
        await self.processors[0].push(data)
