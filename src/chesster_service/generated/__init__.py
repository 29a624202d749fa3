"""
gRPC messages and stubs for the Chesster engine service.

Generated from protos/chesster.proto by grpcio-tools when this package is
first imported, so the .proto file stays the single source of truth.
"""

import grpc

chesster_pb2, chesster_pb2_grpc = grpc.protos_and_services("chesster_service/protos/chesster.proto")

MoveRequest = chesster_pb2.MoveRequest
MoveResponse = chesster_pb2.MoveResponse
HealthCheckRequest = chesster_pb2.HealthCheckRequest
HealthCheckResponse = chesster_pb2.HealthCheckResponse

EngineServiceServicer = chesster_pb2_grpc.EngineServiceServicer
EngineServiceStub = chesster_pb2_grpc.EngineServiceStub
add_EngineServiceServicer_to_server = chesster_pb2_grpc.add_EngineServiceServicer_to_server

__all__ = [
    "MoveRequest",
    "MoveResponse",
    "HealthCheckRequest",
    "HealthCheckResponse",
    "EngineServiceServicer",
    "EngineServiceStub",
    "add_EngineServiceServicer_to_server",
]
