"""Ядро планировщика SchedWise"""
