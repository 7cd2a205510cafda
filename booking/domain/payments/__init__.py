"""Payments domain - checkout-completed webhook handling"""
